REDIS_ROOM_KEY = "room:state:{slug}" # room id - JSON snapshot of the whole room

# **`room:state:{id}` value**
# - full RoomState serialized as JSON (camelCase field names)
# - `passwordHash` = bcrypt hash (optional)
# - TTL = ROOM_TTL_SECONDS, reset by every SET
