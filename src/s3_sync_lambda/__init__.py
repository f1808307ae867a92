"""S3 Sync Lambda.

Lambda handlers that replicate objects from a source S3 bucket to a target bucket in
reaction to S3 event notifications, using separately assumed IAM roles for each side.
"""
