# entropy

A library of building blocks for orchestrating long-running workloads on
Kubernetes. It holds the data types, rules and bookkeeping; the calls to a
cluster, to Helm or to a database are left to the caller (see
"What this package does not do" below).

## Modules

- `entropy.errors` – `EntropyError`, an exception carrying a category
  code, a user-facing message and a technical cause, with the values
  `ERR_INVALID` (`bad_request`), `ERR_NOT_FOUND` (`not_found`),
  `ERR_CONFLICT` (`conflict`), `ERR_INTERNAL` (`internal_error`) and
  `ERR_UNSUPPORTED` (`unsupported`), and the helpers `is_error`,
  `one_of`, `errorf` and `e`.
- `entropy.validator` – `from_json_schema(schema)` returns a function that
  checks JSON documents against a schema; `required_field()` marks a
  dataclass field as required and `tagged_struct(value)` checks those
  fields, nested dataclasses included.
- `entropy.version` – `VersionInfo`, `get_version_and_build_info()` and
  `print_version()`, which writes the version details as JSON to standard
  output.
- `entropy.logger` – `new_logger(level)` returns the `entropy` logger
  writing JSON lines to standard error; `parse_level(name)` maps level
  names such as `debug`, `warn` or `error` to `logging` levels, unknown
  names giving INFO.
- `entropy.kube` – `KubeConfig` (cluster connection settings, with
  `from_dict`, `to_dict` and `sanitise`), `default_client_config()`,
  `Pod`, `LogOptions` (built from a log filter map, producing pod list and
  log options) and `label_selector(labels)`.
- `entropy.kubernetes` – `KubernetesOutput` and `Toleration`: the stored
  output of a Kubernetes cluster resource, read from and written to JSON.
- `entropy.helm` – `ReleaseConfig` with its defaults
  (`default_release_config()`), `get_version`, `resolve_chart_name` and
  `is_release_not_found_error`.
- `entropy.kafka` – `parse_reset_params`, `prep_command` and `do_reset`
  for resetting consumer-group offsets.
- `entropy.job` – `Job`, `JobStatus`, `RetryableError`, `CancelToken`, the
  abstract `JobQueue` and the errors `InvalidJobError`, `JobExistsError`,
  `KindExistsError` and `UnknownKindError`.
- `entropy.worker` – `Worker` and its options `with_job_kind`,
  `with_logger` and `with_run_config`.
- `entropy.firehose_config` – `FirehoseConfig`, `UsageSpec`,
  `ChartValues`, `Telegraf`, `TelegrafConf`, `safe_release_name` and
  `read_config`.
- `entropy.firehose` – `DriverConf` and `parse_driver_conf`,
  `render_labels`, `merge_chart_values`, `clone_and_merge_maps`,
  `build_helm_release`, `FirehoseOutput`, `TransientData`,
  `read_output_data` and `read_transient_data`.

## Installation

Python 3.10 or newer is needed; the only dependency is `jsonschema`. The
`test` extra adds `pytest`.

## Errors

Errors are cloned with a new message or cause and compared by their code:

```python
from entropy.errors import ERR_NOT_FOUND, EntropyError, errorf, is_error

try:
    raise errorf("failed: %d", 100)
except EntropyError as err:
    print(str(err))  # internal_error: failed: 100

err = ERR_NOT_FOUND.with_msgf("something was not found").with_causef("foo not found")
is_error(err, ERR_NOT_FOUND)  # True
```

`is_error(err, target)` also looks through the errors an exception was
raised from, and accepts an exception class as target. Errors that are not
`EntropyError` count as internal errors. `one_of(err, *targets)` checks
several targets at once, and `e(err)` turns any exception into an
`EntropyError`, wrapping unknown ones as internal errors with the text as
cause.

## Firehose configuration

`read_config(project, name, conf_json, default_limits, default_requests,
validate=None)` reads a firehose config and completes it: replicas default
to 1, a missing `deployment_id` is derived from the project and name, a
`deployment_id` longer than 53 characters is rejected, the consumer group
id defaults to `<deployment_id>-0001`, and the given default limits and
requests fill in what the config leaves out. `validate` may be any
function, such as one made by `from_json_schema`, that checks the raw JSON.

Deployment names are kept within the 53-character Helm limit and always
end in `-firehose`:

```python
from entropy.firehose_config import safe_release_name

safe_release_name("abcd-efgh")
# 'abcd-efgh-firehose'
safe_release_name("ABCDEFGHIJKLMNOPQRSTUVWXYZ-abcdefghijklmnopqrstuvwxyz")
# 'ABCDEFGHIJKLMNOPQRSTUVWXYZ-abcdefghij-3801d0-firehose'
```

`build_helm_release(driver_conf, conf, labels, kube_output)` returns the
`ReleaseConfig` for a firehose: chart, version, replica count, image,
environment, resources, tolerations for the sink type, node affinity, init
container, Telegraf settings, secret volumes for configured credentials and
labels rendered from templates such as `{{ .name }}`.

## Kafka consumer resets

```python
from entropy.kafka import parse_reset_params, prep_command

reset_to = parse_reset_params(b'{"to": "latest"}')  # 'latest'
prep_command("localhost:9092", "my-group", reset_to)
# ['kafka-consumer-groups.sh', '--bootstrap-server', 'localhost:9092',
#  '--group', 'my-group', '--reset-offsets', '--execute', '--all-topics',
#  '--to-latest']
```

`to` may be `latest` or `earliest` in any case, or exactly `datetime`, in
which case the `datetime` field is the value returned; anything else raises
a `bad_request` error. `do_reset(run_job, namespace, brokers, consumer_id,
reset_value)` calls `run_job(namespace, "<consumer_id>-reset", image,
command, 6)` with the `bitnami/kafka:2.0.0` image.

## Jobs and workers

`Worker(queue, *options)` takes a `JobQueue` and options:

- `with_job_kind(kind, fn)` registers a handler; a kind can be registered
  only once (`KindExistsError`).
- `with_logger(logger)` sets a `logging.Logger`; `None` silences logging.
- `with_run_config(workers, poll_interval)` sets the number of worker
  threads (0 means 1) and the poll interval (at least 100 ms; a number is
  taken as seconds).

`Worker.enqueue(ctx, *jobs)` sanitises the jobs (trimmed id, lower-cased
kind, status `PENDING`) and raises `InvalidJobError` or `UnknownKindError`
before anything is queued. `Worker.run(ctx)` polls the queue in worker
threads until the `CancelToken` is cancelled.

A handler is called as `fn(ctx, job)` and returns the job's result. Raising
`RetryableError` keeps the job pending and reschedules it, never sooner
than five seconds later; any other `Exception` marks it `FAILED`; anything
raised outside the `Exception` hierarchy (other than `KeyboardInterrupt`,
`SystemExit` and `GeneratorExit`) marks it `PANIC`. A job attempted with a
cancelled token stays pending and is rescheduled five seconds later.

## What this package does not do

- It does not talk to a Kubernetes cluster or to Helm. It builds cluster
  settings, pod and log options and `ReleaseConfig` values, but installing
  releases, listing pods, streaming logs and running jobs are up to the
  caller (for example through the `run_job` function given to `do_reset`).
- It provides no job storage. `JobQueue` is an abstract class; a queue
  backed by a database has to be supplied.
- It ships no JSON schema for firehose configs; pass your own validator to
  `read_config`.
- It has no command-line program and no server.