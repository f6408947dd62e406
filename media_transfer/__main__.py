# python -m media_transfer --port 3443 --root .
from __future__ import annotations

import argparse

from media_transfer.app.adapters.io.environment import load_settings
from media_transfer.app.main import configure_logging
from media_transfer.app.server import serve


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="media_transfer", description="Local HTTPS file-upload server")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.add_argument("--root", dest="service_root", default=None, help="service root (static files, TLS, uploads)")
    p.add_argument("--uploads-dir", dest="uploads_dir", default=None)
    p.add_argument("--key", dest="tls_key_path", default=None, help="TLS private key (PEM)")
    p.add_argument("--cert", dest="tls_cert_path", default=None, help="TLS certificate (PEM)")
    p.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])
    return p


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    overrides = vars(args).copy()
    log_level = overrides.pop("log_level")
    settings = load_settings(**overrides)

    serve(settings, log_level=log_level)


if __name__ == "__main__":
    main()
