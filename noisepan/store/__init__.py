"""SQLite storage for posts, scores, duplicate sightings and channel statistics."""