REDIS_MEMBERS_KEY = "room:members:{slug}" # room id - list of JSON encoded peer addresses

# **Example `room:members:{id}` list entries**
# - `{"ip": "203.0.113.7", "family": "IPv4", "port": 40123}`
# - entries are appended in registration order, duplicates allowed
# - the whole key carries the room idle TTL, refreshed on register and info
