"""
Snapshot repository, builder, tag selection and database adapters
"""
