# {slug} and {item_id} are percent-encoded (urllib.parse.quote) so client-chosen ":" cannot cross rooms
REDIS_META_KEY = "room:meta:{slug}" # room key - document metadata hash
REDIS_FILES_KEY = "room:files:{slug}" # room key - list of file ids in display order
REDIS_FILE_KEY = "room:file:{slug}:{item_id}" # room key + file id - file hash
REDIS_NOTES_KEY = "room:notes:{slug}" # room key - list of note ids in display order
REDIS_NOTE_KEY = "room:note:{slug}:{item_id}" # room key + note id - note hash
REDIS_ACTIVITY_KEY = "rooms:activity" # sorted set - room key scored by last activity (epoch seconds)

# **Example `room:meta:{key}` hash fields**
# - `room_key` = `{roomKey}`
# - `created_at` = ISO timestamp (UTC)
# - `last_activity` = ISO timestamp (UTC), refreshed by every mutation
# - `active_file_id` = id of the last focused file
# - `active_note_id` = id of the last focused note

# **Example `room:file:{key}:{id}` hash fields**
# - `id`, `name`, `content`, `language`
