"""Copy a MongoDB database between servers with mongodump/mongorestore."""
