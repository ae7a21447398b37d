import numpy as np

from hybridcnn.network import CONV, FC, POOL, VGG16_STAGES, Network, StageSpec, learnable_stages


def test_vgg16_stage_counts() -> None:
    kinds = [s.kind for s in VGG16_STAGES]
    assert kinds.count(CONV) == 13
    assert kinds.count(POOL) == 5
    assert kinds.count(FC) == 3
    assert VGG16_STAGES[-1].out_channels == 10


def test_vgg16_param_indices_are_positional() -> None:
    indices = [s.param_index for s in VGG16_STAGES if s.param_index is not None]
    assert indices == list(range(16))
    assert all(s.param_index is None for s in VGG16_STAGES if s.kind == POOL)


def test_vgg16_stages_chain() -> None:
    channels, size = 3, 32
    for s in VGG16_STAGES:
        assert s.in_channels == channels, s.name
        if s.kind == CONV:
            assert s.size == size, s.name
        elif s.kind == POOL:
            assert s.size * 2 == size, s.name
            assert s.out_channels == s.in_channels
        else:
            assert s.in_channels == channels * size * size, s.name
            assert s.size == 1
        channels, size = s.out_channels, s.size


def test_expected_sizes_match_vgg16_layout() -> None:
    sizes = Network.expected_sizes()
    assert len(sizes) == 32
    assert sizes[0] == 64 * 3 * 9
    assert sizes[1] == 64
    assert sizes[24] == 512 * 512 * 9
    assert sizes[26:] == [512 * 512, 512, 512 * 512, 512, 10 * 512, 10]


def test_network_accessors() -> None:
    net = Network([np.full((2,), i, dtype=np.float64) for i in range(4)])
    assert len(net) == 4
    assert net.weight(1).dtype == np.float32
    np.testing.assert_array_equal(net.weight(1), [2.0, 2.0])
    np.testing.assert_array_equal(net.bias(1), [3.0, 3.0])
    assert net[0] is net.weight(0)


def test_random_network_is_seeded() -> None:
    stages = (
        StageSpec(CONV, "c", 1, 2, 4, 0),
        StageSpec(FC, "fc", 32, 3, 1, 1),
    )
    a = Network.random(seed=3, stages=stages)
    b = Network.random(seed=3, stages=stages)
    assert [len(x) for x in a.buffers] == [18, 2, 96, 3]
    for x, y in zip(a.buffers, b.buffers):
        np.testing.assert_array_equal(x, y)


def test_learnable_stages_sorted_by_param_index() -> None:
    stages = (
        StageSpec(FC, "late", 4, 2, 1, 1),
        StageSpec(POOL, "p", 1, 1, 2),
        StageSpec(FC, "early", 8, 4, 1, 0),
    )
    assert [s.name for s in learnable_stages(stages)] == ["early", "late"]
