# kitbag

A grab bag of small building blocks for Python programs. It uses only the
standard library.

## Installation

```
pip install kitbag
```

To run the test suite, install the `test` extra and run pytest:

```
pip install "kitbag[test]"
pytest
```

## Cancellation

Functions and methods that take a `ctx` argument in `kitbag.timeutil`,
`kitbag.stat`, `kitbag.sync`, `kitbag.fileops` and `kitbag.ssh` expect a
`threading.Event` (or `None`). Setting the event cancels the work. Where work
is cut short, `concurrent.futures.CancelledError` is raised. In
`kitbag.translator`, `ctx` is a mapping such as a WSGI environ.

## What is inside

| Module | Provides |
| --- | --- |
| `kitbag.logger` | `LoggerLevel`, `logger_level_from_string`, `CompleteLogger`, `adapt_std_logger`, `adapt_test_logger` |
| `kitbag.bimap` | `BiMap`, a thread-safe bidirectional map |
| `kitbag.sorting` | `sort_int64`, `sort_uint64` (in-place sorts) |
| `kitbag.randstr` | `rand_str`, random alphanumeric strings |
| `kitbag.timeutil` | cancellable `sleep`, mockable `now` / `mock_now`, `Timestamp`, `TimestampNano`, `Stopwatch`, `duration_minimalist_format` |
| `kitbag.limiter` | `Limiter` and `LimiterBucket`: named counters emptied every period |
| `kitbag.stat` | `Stater`, `AtomicDuration`, `AtomicUint64`, `AtomicUint64RateStat`, `AtomicDurationPercentageStat`, `AtomicDurationAvgStat` |
| `kitbag.sync` | `Chan`, `ChanOptions`, `Eventer`, `ThreadLimiter`, `BufferPool`, `DebugMutex`, `FIFOMutex` |
| `kitbag.pcm` | `pcm_level`, `pcm_normalize`, `convert_pcm_bit_depth`, `PCMSampleRateConverter`, `PCMChannelsConverter`, `PCMSilenceDetector` |
| `kitbag.fileops` | cancellable `copy_file` / `move_file`, `local_copy_file`, `is_term_signal`, `term_signal_handler`, `logger_signal_handler` |
| `kitbag.ssh` | `SSHSession` protocol and `ssh_copy_file_func`, a copy function that sends files with `scp` |
| `kitbag.translator` | `Translator`: JSON translation files and a WSGI middleware reading `Accept-Language` |
| `kitbag.worker` | `Worker` and `Task`: block until stopped, handle signals, wait for tasks |

## Examples

### Loggers

`adapt_std_logger` takes any object with `fatal`, `fatalf`, `print` and
`printf` methods and returns an object offering every severity method
(`debug`, `infof`, `warn_c`, `writef`, ...). Methods the object lacks fall
back to `print` / `printf`.

```python
from kitbag.logger import LoggerLevel, adapt_std_logger

logger = adapt_std_logger(my_logger)
logger.writef(LoggerLevel.WARN, "disk at %d%%", 93)
str(LoggerLevel.ERROR)  # "error"
```

### A bidirectional map

```python
from kitbag.bimap import BiMap

m = BiMap()
m.set(0, 1)
m.get(0)          # 1
m.get_inverse(1)  # 0
m.must_get(2)     # raises KeyError
```

### Rate limiting

```python
from kitbag.limiter import Limiter

with Limiter() as limiter:
    bucket = limiter.add("api", 2, 1.0)  # 2 events per second
    bucket.inc()  # True
    bucket.inc()  # True
    bucket.inc()  # False until the period elapses
```

### Timing nested work

```python
from kitbag.timeutil import Stopwatch

sw = Stopwatch()
child = sw.new_child("load")
child.done()
sw.done()
print(sw.dump())
data = sw.marshal_json()
copy = Stopwatch.unmarshal_json(data)
```

### Ordered work on a queue

```python
from kitbag.sync import Chan, ChanOptions

chan = Chan(ChanOptions(process_all=True))
chan.add(lambda: print("first"))
chan.add(lambda: (print("second"), chan.stop()))
chan.start()  # runs the queued functions, returns once stopped and empty
```

### PCM

```python
from kitbag.pcm import PCMChannelsConverter, pcm_normalize

pcm_normalize([10000, 0, -10000], 16)  # [32767, 0, -32767]

out = []
mono_to_stereo = PCMChannelsConverter(1, 2, out.append)
for sample in (1, 2, 3):
    mono_to_stereo.add(sample)
# out == [1, 1, 2, 2, 3, 3]
```

### Copying files

```python
from kitbag.fileops import copy_file, local_copy_file

copy_file(None, "backup/data", "data", local_copy_file)
```

### Translations

```python
from kitbag.translator import Translator

t = Translator(default_language="fr")
t.parse_dir("translations")  # e.g. translations/en.json, translations/fr.json
t.translate("en", "greeting.hello")
app = t.http_middleware(wsgi_app)
```

### Workers

```python
from kitbag.worker import Worker

worker = Worker()
worker.handle_signals()  # call from the main thread
task = worker.new_task()
task.do(lambda: print("working"))
worker.wait()  # returns after a terminating signal or worker.stop()
```

## What the package does not do

- There is no command-line program; everything is used from Python.
- `kitbag.ssh` opens no connections. You supply a function returning an
  object with `run`, `start`, `stdin_pipe` and `wait` methods (and something
  to close it); the package only drives the `mkdir -p` and `scp -qt`
  exchange through it.
- `Translator.http_middleware` wraps a WSGI application; the package has no
  HTTP server of its own.