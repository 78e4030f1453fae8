#!/usr/bin/env python3
"""
SniProbe — Key Store Generator

Generates the password-protected PKCS#12 key store shared by the demo's
server and client: one RSA key and a self-signed certificate that acts as
its own trust anchor.

Usage:
    python scripts/keystore_gen.py --output config/keypair.p12
    python scripts/keystore_gen.py --output config/keypair.p12 --password s3cret --hostname example.com

Then point the demo at it:
    SNIPROBE_KEYSTORE_PATH=config/keypair.p12 python -m sniprobe
"""

from __future__ import annotations

import argparse
from pathlib import Path

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.serialization import pkcs12

from sniprobe.credentials import generate_keystore


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate the PKCS#12 key store used by the SniProbe demo"
    )
    parser.add_argument(
        "--output", default="config/keypair.p12",
        help="Key store path (default: config/keypair.p12)"
    )
    parser.add_argument(
        "--password", default="storepass",
        help="Key store password (default: storepass)"
    )
    parser.add_argument(
        "--hostname", default="example.com",
        help="Hostname for the certificate SAN (default: example.com)"
    )
    parser.add_argument(
        "--key-size", type=int, default=2048,
        help="RSA key size in bits (default: 2048)"
    )
    parser.add_argument(
        "--validity-days", type=int, default=3650,
        help="Certificate validity in days (default: 3650)"
    )
    args = parser.parse_args()

    output = Path(args.output)
    print(f"\nGenerating key store for '{args.hostname}':")
    print(f"  Output: {output.resolve()}\n")

    generate_keystore(
        output,
        password=args.password,
        hostname=args.hostname,
        key_size=args.key_size,
        validity_days=args.validity_days,
    )

    _, cert, _ = pkcs12.load_key_and_certificates(
        output.read_bytes(), args.password.encode("utf-8") if args.password else None,
    )
    if cert is not None:
        print(f"  Subject:              {cert.subject.rfc4514_string()}")
        print(f"  Fingerprint (SHA256): {cert.fingerprint(hashes.SHA256()).hex()}")

    print("\nDone. Add to config/default.yaml:\n")
    print("  credentials:")
    print(f"    keystore_path: \"{output}\"")
    print(f"    password: \"{args.password}\"")
    print()


if __name__ == "__main__":
    main()
