"""HTTP surface for upload-session planning.

Only grants are issued here; file bytes go straight from the client to
object storage using the returned URLs.
"""
