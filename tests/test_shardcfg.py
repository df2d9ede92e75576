import pytest

from shardraft.shardcfg import (
    GID1,
    NSHARDS,
    ConfigError,
    ShardConfig,
    from_string,
    key2shard,
)


def assert_same_config(c1, c2):
    assert c1.num == c2.num
    assert c1.shards == c2.shards
    assert c1.groups == c2.groups


def test_basic():
    gid1, gid2 = 1, 2
    cfg = ShardConfig()
    cfg.check_config([])

    cfg.join_balance({gid1: ["x", "y", "z"]})
    cfg.check_config([gid1])

    cfg.join_balance({gid2: ["a", "b", "c"]})
    cfg.check_config([gid1, gid2])

    assert cfg.groups[gid1] == ["x", "y", "z"]
    assert cfg.groups[gid2] == ["a", "b", "c"]

    cfg.leave_balance([gid1])
    cfg.check_config([gid2])

    cfg.leave_balance([gid2])
    cfg.check_config([])


def test_init_query_first_config():
    cfg = ShardConfig()
    assert cfg.join_balance({GID1: ["xxx"]}) is True
    assert cfg.num == 1
    assert cfg.shards[0] == GID1
    assert cfg.shards == [GID1] * NSHARDS
    cfg.check_config([GID1])


def test_key2shard_in_range_and_deterministic():
    for key in ["", "a", "key-17", "ünïcode", "x" * 100]:
        shard = key2shard(key)
        assert 0 <= shard < NSHARDS
        assert key2shard(key) == shard


def test_string_format_of_empty_config():
    assert str(ShardConfig()) == (
        '{"Num":0,"Shards":[0,0,0,0,0,0,0,0,0,0,0,0],"Groups":{}}'
    )


def test_string_round_trip():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"], 2: ["y", "z"]})
    back = from_string(str(cfg))
    assert_same_config(cfg, back)


def test_from_string_invalid():
    with pytest.raises(ConfigError):
        from_string("not json")


def test_copy_is_deep():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"]})
    cp = cfg.copy()
    assert_same_config(cfg, cp)
    cp.groups[1].append("w")
    cp.shards[0] = 9
    cp.num = 7
    assert cfg.groups[1] == ["x"]
    assert cfg.shards[0] == 1
    assert cfg.num == 1


def test_rejoin_returns_false():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"]})
    assert cfg.join_balance({1: ["y"]}) is False
    assert cfg.num == 1


def test_join_same_server_in_two_groups_raises():
    cfg = ShardConfig()
    cfg.join({1: ["x"]})
    with pytest.raises(ConfigError):
        cfg.join({2: ["x"]})


def test_join_nothing_raises():
    with pytest.raises(ConfigError):
        ShardConfig().join({})


def test_leave_missing_returns_false():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"]})
    assert cfg.leave_balance([5]) is False
    assert cfg.num == 1


def test_leave_nothing_raises():
    with pytest.raises(ConfigError):
        ShardConfig().leave([])


def test_leave_all_unassigns_shards():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"], 2: ["y"]})
    cfg.leave_balance([1, 2])
    assert cfg.shards == [0] * NSHARDS
    assert not cfg.is_member(1)


def test_many_groups_balanced():
    cfg = ShardConfig()
    gids = list(range(1, 6))
    for gid in gids:
        cfg.join_balance({gid: [f"s{gid}"]})
        cfg.check_config(gids[:gid])
    assert all(cfg.is_member(g) for g in gids)
    cfg.leave_balance([3])
    cfg.check_config([1, 2, 4, 5])
    assert not cfg.is_member(3)


def test_leave_then_join_keeps_stable_shards():
    cfg = ShardConfig()
    cfg.join_balance({1: ["a"], 2: ["b"], 3: ["c"]})
    joined = cfg.copy()
    assert joined.join_balance({4: ["d"]}) is True
    left = joined.copy()
    assert left.leave_balance([4]) is True
    left.check_config([1, 2, 3])
    assert left.num == cfg.num + 2


def test_gid_servers():
    cfg = ShardConfig()
    assert cfg.gid_servers(0) == (0, None)
    cfg.join_balance({1: ["x", "y"]})
    assert cfg.gid_servers(3) == (1, ["x", "y"])


def test_check_config_detects_problems():
    cfg = ShardConfig()
    cfg.join_balance({1: ["x"], 2: ["y"]})
    with pytest.raises(ConfigError):
        cfg.check_config([1])
    with pytest.raises(ConfigError):
        cfg.check_config([1, 3])
    bad = cfg.copy()
    bad.shards[0] = 7
    with pytest.raises(ConfigError):
        bad.check_config([1, 2])
    skewed = cfg.copy()
    skewed.shards = [1] * NSHARDS
    with pytest.raises(ConfigError):
        skewed.check_config([1, 2])


def test_wrong_shard_count_rejected():
    with pytest.raises(ConfigError):
        ShardConfig(shards=[0, 0])