#!/usr/bin/env python3
"""Generate the RS256 key pair used to sign access tokens."""
import os
import sys

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate(directory='oauth-keys', key_size=2048, overwrite=False):
    private_path = os.path.join(directory, 'private.pem')
    public_path = os.path.join(directory, 'public.pem')
    if os.path.exists(private_path) and not overwrite:
        print(f"⚠️  {private_path} already exists; pass --force to replace it")
        return False

    os.makedirs(directory, exist_ok=True)
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    with open(private_path, 'wb') as handle:
        handle.write(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ))
    os.chmod(private_path, 0o600)

    with open(public_path, 'wb') as handle:
        handle.write(key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ))

    print(f"✅ Wrote {private_path} and {public_path}")
    return True


if __name__ == '__main__':
    args = [arg for arg in sys.argv[1:] if arg != '--force']
    generate(args[0] if args else 'oauth-keys', overwrite='--force' in sys.argv)
