REDIS_META_KEY = "room:meta:{code}" # room code - room hash
REDIS_USERS_KEY = "room:users:{code}" # room code - set of participant user ids
REDIS_USER_KEY = "room:user:{code}:{user_id}" # participant hash
REDIS_SIGNALS_KEY = "room:signals:{code}" # sorted set of event ids scored by created_at (ms)
REDIS_SIGNAL_SEQ_KEY = "room:signals:seq:{code}" # per-room insertion counter
REDIS_SIGNAL_KEY = "room:signal:{code}:{event_id}" # event hash
REDIS_DELIVERED_KEY = "room:signal:delivered:{code}:{event_id}" # set of user ids the event was handed to

# **Example `room:meta:{code}` hash fields** (values are JSON encoded)
# - `code` = "K7QX2M"
# - `created_at` = epoch milliseconds
# - `status` = "waiting" | "active" | "ended"

# **Example `room:user:{code}:{user_id}` hash fields**
# - `room_code`, `user_id`, `display_name`
# - `joined_at`, `last_active` = epoch milliseconds

# **Example `room:signal:{code}:{event_id}` hash fields**
# - `type` = "ready" | "offer" | "answer" | "candidate" | "bye"
# - `from` = sender user id
# - `to` = recipient user id or null (broadcast)
# - `payload` = opaque JSON value
# - `created_at` = epoch milliseconds

# **TTL**
# - Every signal key expires at `created_at + SIGNAL_RETENTION_SECONDS`.
# - `room:meta:{code}` expires only if ROOM_TTL_SECONDS is set.
