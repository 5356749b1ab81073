from hashlib import sha1

# 8 hex digits of the digest are kept, so values always fit in 32 bits
CRUSH_HASH_DIGITS = 8
CRUSH_HASH_MAX = (1 << (4 * CRUSH_HASH_DIGITS)) - 1


def crush_hash(pg: int, item: int, attempt: int) -> int:
    seed = f"{pg}-{item}-{attempt}"
    digest = sha1(seed.encode()).hexdigest()
    return int(digest[:CRUSH_HASH_DIGITS], 16)
