from datetime import timedelta

import pytest

from kitbag.pcm import (
    PCMChannelsConverter,
    PCMSampleRateConverter,
    PCMSilenceDetector,
    PCMSilenceDetectorOptions,
    convert_pcm_bit_depth,
    max_pcm_sample,
    pcm_level,
    pcm_normalize,
)


def test_pcm_level():
    assert pcm_level([1, 2, 3]) == 2.160246899469287


def test_pcm_level_empty_is_nan():
    assert str(pcm_level([])) == "nan"


def test_max_pcm_sample():
    assert max_pcm_sample(16) == 32767
    assert max_pcm_sample(8) == 127


def test_pcm_normalize_nothing_to_do():
    i = [10000, max_pcm_sample(16), -10000]
    assert pcm_normalize(i, 16) == i


def test_pcm_normalize():
    assert pcm_normalize([10000, 0, -10000], 16) == [32767, 0, -32767]


def test_pcm_normalize_all_zero_raises():
    with pytest.raises(ZeroDivisionError):
        pcm_normalize([0, 0], 16)


def test_convert_pcm_bit_depth_cases_from_source():
    assert convert_pcm_bit_depth(1 >> 8, 16, 16) == 1 >> 8
    assert convert_pcm_bit_depth(1 >> 24, 32, 16) == 1 >> 8
    assert convert_pcm_bit_depth(1 >> 8, 16, 32) == 1 >> 24


def test_convert_pcm_bit_depth_shifts():
    assert convert_pcm_bit_depth(256, 16, 8) == 1
    assert convert_pcm_bit_depth(1, 8, 16) == 256
    assert convert_pcm_bit_depth(-256, 16, 8) == -1


def _run_rate(src, dst, channels, samples):
    out = []
    converter = PCMSampleRateConverter(src, dst, channels, out.append)
    for s in samples:
        converter.add(s)
    return out


def test_sample_rate_nothing_to_do():
    samples = list(range(1, 21))
    assert _run_rate(1, 1, 1, samples) == samples


def test_sample_rate_downsample():
    samples = list(range(1, 21))
    assert _run_rate(5, 3, 1, samples) == [1, 2, 4, 6, 7, 9, 11, 12, 14, 16, 17, 19]


def test_sample_rate_downsample_multi_channels():
    samples = list(range(1, 21))
    assert _run_rate(4, 2, 2, samples) == [1, 2, 4, 5, 8, 9, 12, 13, 16, 17]


def test_sample_rate_realistic_downsample():
    samples = list(range(1, 4 * 44100 + 1))
    assert len(_run_rate(44100, 16000, 2, samples)) == 4 * 16000


def test_sample_rate_upsample():
    samples = list(range(1, 11))
    assert _run_rate(3, 5, 1, samples) == [
        1, 1, 2, 2, 3, 4, 4, 5, 5, 6, 7, 7, 8, 8, 9, 10, 10,
    ]


def test_sample_rate_upsample_multi_channels():
    samples = list(range(1, 11))
    assert _run_rate(3, 5, 2, samples) == [
        1, 2, 1, 2, 3, 4, 3, 4, 5, 6, 7, 8, 7, 8, 9, 10, 9, 10,
    ]


def test_sample_rate_reset_restarts():
    out = []
    converter = PCMSampleRateConverter(5, 3, 1, out.append)
    for s in range(1, 4):
        converter.add(s)
    converter.reset()
    out.clear()
    for s in range(1, 21):
        converter.add(s)
    assert out == [1, 2, 4, 6, 7, 9, 11, 12, 14, 16, 17, 19]


def test_sample_rate_callback_error_propagates():
    def fail(_):
        raise RuntimeError("boom")

    converter = PCMSampleRateConverter(1, 1, 1, fail)
    with pytest.raises(RuntimeError, match="boom"):
        converter.add(1)


def _run_channels(src, dst, samples):
    out = []
    converter = PCMChannelsConverter(src, dst, out.append)
    for s in samples:
        converter.add(s)
    return out


def test_channels_nothing_to_do():
    samples = list(range(1, 21))
    assert _run_channels(3, 3, samples) == samples


def test_channels_throw_away():
    assert _run_channels(3, 1, list(range(1, 21))) == [1, 4, 7, 10, 13, 16, 19]


def test_channels_repeat():
    expected = [v for s in range(1, 21) for v in (s, s)]
    assert _run_channels(1, 2, list(range(1, 21))) == expected


def test_silence_detector():
    sd = PCMSilenceDetector(
        PCMSilenceDetectorOptions(
            max_silence_level=2,
            min_silence_duration=timedelta(milliseconds=400),
            sample_rate=5,
            step_duration=timedelta(milliseconds=200),
        )
    )

    assert sd.add([3, 1, 3, 1]) == []
    assert len(sd._analyses) == 1

    assert sd.add([1, 3, 3, 1]) == []
    assert len(sd._analyses) == 5

    assert sd.add([1]) == [[1, 1, 3, 3, 1, 1]]
    assert len(sd._analyses) == 2

    assert sd.add([1, 1, 1, 1, 3, 3, 1, 1, 1, 1, 3, 3, 1, 1, 1, 1]) == [
        [1, 1, 3, 3, 1, 1],
        [1, 1, 3, 3, 1, 1],
    ]
    assert len(sd._analyses) == 2

    assert sd.add([1, 1, 1, 3, 3, 1, 3, 3, 1, 3, 3, 1, 1, 1]) == [
        [1, 1, 3, 3, 1, 3, 3, 1, 3, 3, 1, 1]
    ]
    assert len(sd._analyses) == 2


def test_silence_detector_reset():
    sd = PCMSilenceDetector(
        PCMSilenceDetectorOptions(
            max_silence_level=2,
            min_silence_duration=0.4,
            sample_rate=5,
            step_duration=0.2,
        )
    )
    sd.add([1, 1, 3])
    sd.reset()
    assert sd._analyses == []
    assert sd.add([3, 3]) == []


def test_silence_detector_without_samples_per_analysis_raises():
    with pytest.raises(ValueError):
        PCMSilenceDetector(PCMSilenceDetectorOptions())