"""Bridges to systems outside the build pipeline.

Modules
-------
storage
    boto3 presigned upload grants and small object writes.
crypto_bridge
    Ed25519 manifest signing via PyNaCl.
exporters
    Manifest export to local files or object storage.
minting
    Token minting protocol and a local simulated minter.
"""
