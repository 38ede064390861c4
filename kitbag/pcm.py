"""PCM sample helpers: level, normalisation, bit depth, rate and channel conversion, silences."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable

from .timeutil import _seconds

__all__ = [
    "pcm_level",
    "max_pcm_sample",
    "pcm_normalize",
    "convert_pcm_bit_depth",
    "PCMSampleRateConverter",
    "PCMChannelsConverter",
    "PCMSilenceDetectorOptions",
    "PCMSilenceDetector",
]

SampleFunc = Callable[[int], Any]


def _trunc_div(a: int, b: int) -> int:
    """Integer division rounding toward zero."""
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def pcm_level(samples: list[int]) -> float:
    """Return the root mean square of ``samples`` (NaN when empty)."""
    if not samples:
        return math.nan
    total = sum(float(s) ** 2 for s in samples)
    return math.sqrt(total / len(samples))


def max_pcm_sample(bit_depth: int) -> int:
    """Return the largest sample value for a signed ``bit_depth``."""
    return int(math.pow(2, bit_depth) / 2.0) - 1


def pcm_normalize(samples: list[int], bit_depth: int) -> list[int]:
    """Scale ``samples`` so that the loudest reaches the maximum for ``bit_depth``."""
    peak = max((abs(s) for s in samples), default=0)
    top = max_pcm_sample(bit_depth)
    return [_trunc_div(s * top, peak) for s in samples]


def convert_pcm_bit_depth(src_sample: int, src_bit_depth: int, dst_bit_depth: int) -> int:
    """Shift a sample from one bit depth to another."""
    if src_bit_depth == dst_bit_depth:
        return src_sample
    if src_bit_depth < dst_bit_depth:
        return src_sample << (dst_bit_depth - src_bit_depth)
    return src_sample >> (src_bit_depth - dst_bit_depth)


class PCMSampleRateConverter:
    """Converts interleaved samples to another sample rate, feeding them to ``fn``."""

    def __init__(
        self,
        src_sample_rate: int,
        dst_sample_rate: int,
        num_channels: int,
        fn: SampleFunc,
    ) -> None:
        self._src = src_sample_rate
        self._dst = dst_sample_rate
        self._channels = num_channels
        self._fn = fn
        self.reset()

    def reset(self) -> None:
        """Forget buffered samples and counters."""
        self._buffers: list[list[int]] = [[] for _ in range(self._channels)]
        self._channels_processed = 0
        self._samples_output = 0
        self._samples_processed = 0

    def _threshold(self) -> float:
        return 1.0 + float(self._samples_output) * float(self._src) / float(self._dst)

    def add(self, i: int) -> None:
        """Add one sample; converted samples are passed to the callback."""
        if self._src == self._dst:
            self._fn(i)
            return

        self._channels_processed += 1
        if self._channels_processed > self._channels:
            self._channels_processed = 1
        if self._channels_processed == self._channels:
            self._samples_processed += 1

        self._buffers[self._channels_processed - 1].append(i)

        if self._src > self._dst:
            if (
                self._samples_output > 0
                and float(self._samples_processed) < self._threshold()
            ) or self._channels_processed < self._channels:
                return
            for idx, buffer in enumerate(self._buffers):
                merged = _trunc_div(sum(buffer), len(buffer))
                self._buffers[idx] = []
                self._fn(merged)
            self._samples_output += 1
            return

        if self._channels_processed < self._channels:
            return

        while (
            self._samples_output == 0
            or float(self._samples_processed) + 1.0 > self._threshold()
        ):
            for buffer in self._buffers:
                if len(buffer) != 1:
                    raise ValueError(f"invalid buffer item length {len(buffer)}")
                self._fn(buffer[0])
            self._samples_output += 1

        self._buffers = [[] for _ in range(self._channels)]


class PCMChannelsConverter:
    """Converts interleaved samples to another number of channels."""

    def __init__(self, src_num_channels: int, dst_num_channels: int, fn: SampleFunc) -> None:
        self._src = src_num_channels
        self._dst = dst_num_channels
        self._fn = fn
        self._src_samples = 0

    def reset(self) -> None:
        """Restart at the first channel."""
        self._src_samples = 0

    def add(self, i: int) -> None:
        """Add one sample; converted samples are passed to the callback."""
        if self._src == self._dst:
            self._fn(i)
            return

        if self._src_samples == self._src:
            self._src_samples = 0
        self._src_samples += 1

        if self._src > self._dst:
            if self._src_samples > self._dst:
                return
            self._fn(i)
            return

        if self._src_samples < self._src:
            repeated = [i]
        else:
            repeated = [i] * (self._dst - self._src + 1)
        for s in repeated:
            self._fn(s)


@dataclass
class PCMSilenceDetectorOptions:
    """Options of a :class:`PCMSilenceDetector`; durations in seconds or timedelta."""

    max_silence_level: float = 0.0
    min_silence_duration: Any = 0
    sample_rate: int = 0
    step_duration: Any = 0


@dataclass
class _Analysis:
    level: float
    samples: list[int] = field(default_factory=list)


class PCMSilenceDetector:
    """Finds chunks of samples framed by silences."""

    def __init__(self, options: PCMSilenceDetectorOptions | None = None) -> None:
        self._options = options or PCMSilenceDetectorOptions()
        self._lock = threading.Lock()
        self._analyses: list[_Analysis] = []
        self._buf: list[int] = []

        min_silence = _seconds(self._options.min_silence_duration)
        if min_silence == 0:
            min_silence = 1.0
        step = _seconds(self._options.step_duration)
        if step == 0:
            step = 0.03
        self._options.min_silence_duration = timedelta(seconds=min_silence)
        self._options.step_duration = timedelta(seconds=step)

        self._samples_per_analysis = int(math.floor(float(self._options.sample_rate) * step))
        self._min_analyses_per_silence = int(math.floor(min_silence / step))
        if self._samples_per_analysis <= 0:
            raise ValueError("sample rate and step duration give no samples per analysis")

    def reset(self) -> None:
        """Forget buffered samples and analyses."""
        with self._lock:
            self._analyses = []
            self._buf = []

    def add(self, samples: list[int]) -> list[list[int]]:
        """Add samples and return every chunk found between valid silences."""
        with self._lock:
            return self._add(samples)

    def _add(self, samples: list[int]) -> list[list[int]]:
        self._buf.extend(samples)
        step = self._samples_per_analysis
        while len(self._buf) >= step:
            chunk = self._buf[:step]
            self._analyses.append(_Analysis(pcm_level(chunk), list(chunk)))
            del self._buf[:step]

        minimum = self._min_analyses_per_silence
        analyses = self._analyses
        valid: list[list[int]] = []
        leading = in_between = trailing = 0
        i = 0
        while i < len(analyses):
            if analyses[i].level < self._options.max_silence_level:
                if in_between == 0:
                    leading += 1
                    if leading > minimum:
                        drop = leading - minimum
                        del analyses[:drop]
                        i -= drop
                        leading = minimum
                    i += 1
                    continue

                trailing += 1
                if trailing < minimum:
                    i += 1
                    continue

                valid.append([s for a in analyses[: i + 1] for s in a.samples])
                drop = leading + in_between
                del analyses[:drop]
                i -= drop
                leading, in_between, trailing = trailing, 0, 0
                i += 1
            else:
                if i == 0:
                    del analyses[0]
                    continue
                if in_between == 0 and leading < minimum:
                    del analyses[: i + 1]
                    i = 0
                    continue
                if trailing > 0:
                    in_between += trailing
                    trailing = 0
                in_between += 1
                i += 1
        return valid