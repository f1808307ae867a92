"""Lambda handler implementations.

- replication: copies and removes objects between source and target buckets
- buckets: lists the buckets visible to an assumed role
- events: logs delivered notifications without acting on them
"""
