import os

# in-memory database shared by every session; set before main is imported
os.environ["DATABASE_URL"] = "sqlite://"
