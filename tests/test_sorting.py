from kitbag.sorting import sort_int64, sort_uint64


def test_sort_int64():
    i = [3, 2, 4, 1]
    sort_int64(i)
    assert i == [1, 2, 3, 4]


def test_sort_uint64():
    ui = [3, 2, 4, 1]
    sort_uint64(ui)
    assert ui == [1, 2, 3, 4]


def test_sort_int64_negative_values():
    i = [0, -5, 7, -1]
    sort_int64(i)
    assert i == sorted([0, -5, 7, -1])