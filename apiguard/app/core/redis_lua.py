"""Redis Lua scripts for the sliding-window counter.

These scripts run server-side so the whole check happens as one atomic
operation, closing the gap between the counting pipeline and the
oldest-entry read used for Retry-After.
"""

# Atomic sliding-window hit: prune, count, record, refresh TTL, read oldest.
# Returns {count_before_insert, oldest_score}. The oldest entry always exists
# after the ZADD, so the second element is never nil.
SLIDING_WINDOW_SCRIPT = """
    local key = KEYS[1]
    local now = tonumber(ARGV[1])
    local window_start = tonumber(ARGV[2])
    local member = ARGV[3]
    local ttl = tonumber(ARGV[4])

    -- Drop entries that left the window
    redis.call('ZREMRANGEBYSCORE', key, 0, window_start)

    -- Count before recording the current request
    local count = redis.call('ZCARD', key)

    -- Every request is recorded, admitted or not
    redis.call('ZADD', key, now, member)
    redis.call('EXPIRE', key, ttl)

    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    return {count, oldest[2]}
"""
