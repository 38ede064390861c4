"""Small, dependency-free building blocks: logger adapters, bidirectional maps, rate limiters, stats, function queues and mutexes, PCM helpers, file copies, stopwatches, translators and workers."""

__version__ = "0.1.0"

__all__ = [
    "bimap",
    "fileops",
    "limiter",
    "logger",
    "pcm",
    "randstr",
    "sorting",
    "ssh",
    "stat",
    "sync",
    "timeutil",
    "translator",
    "worker",
]