from hashlib import sha1

from hashing import CRUSH_HASH_MAX, crush_hash


def test_hash_is_prefix_of_sha1_of_seed():
    expected = int(sha1(b"100--5-0").hexdigest()[:8], 16)
    assert crush_hash(100, -5, 0) == expected


def test_hash_is_deterministic_and_bounded():
    for pg in range(20):
        for item in range(-5, 5):
            for attempt in range(3):
                h = crush_hash(pg, item, attempt)
                assert h == crush_hash(pg, item, attempt)
                assert 0 <= h <= CRUSH_HASH_MAX


def test_hash_depends_on_every_argument():
    base = crush_hash(1, 2, 3)
    assert len({base, crush_hash(9, 2, 3), crush_hash(1, 9, 3), crush_hash(1, 2, 9)}) == 4
