"""
media — remote object store staging for account avatars and covers.
"""
