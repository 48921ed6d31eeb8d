# Database module
from .database import Database, StoredChannel
