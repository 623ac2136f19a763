from voxelcraft.vbocache import VBOBlock, VBOCache


def test_alloc_new_block_has_size():
    cache = VBOCache()
    block = cache.alloc(100)
    assert block.size == 100
    assert len(block.memory) == 100


def test_freed_block_is_reused():
    cache = VBOCache()
    block = cache.alloc(1000)
    cache.free(block)
    assert len(cache) == 1
    again = cache.alloc(900)
    assert again is block
    assert len(cache) == 0


def test_too_large_block_not_reused():
    cache = VBOCache()
    big = cache.alloc(5000)
    cache.free(big)
    small = cache.alloc(100)
    assert small is not big
    assert small.size == 100
    assert len(cache) == 1


def test_too_small_block_not_reused():
    cache = VBOCache()
    block = cache.alloc(100)
    cache.free(block)
    other = cache.alloc(200)
    assert other is not block
    assert other.size == 200


def test_picks_fitting_block_among_several():
    cache = VBOCache()
    a = cache.alloc(5000)
    b = cache.alloc(3000)
    cache.free(b)
    cache.free(a)
    got = cache.alloc(2900)
    assert got is b
    assert cache.alloc(4000) is a


def test_empty_blocks_ignored():
    cache = VBOCache()
    cache.free(VBOBlock(None, 10))
    cache.free(VBOBlock(bytearray(), 0))
    assert len(cache) == 0


def test_clear():
    cache = VBOCache()
    block = cache.alloc(64)
    cache.free(block)
    cache.clear()
    assert len(cache) == 0
    assert cache.alloc(64) is not block