"""
Dump the PostgreSQL database to BACKUP_DIR and prune old dumps.

Run: python -m scripts.backup [--upload]
  --upload  also copies the dump to the BACKUP_BUCKET Cloud Storage bucket
"""
import argparse
import logging
import os
import subprocess
import sys
import time
from datetime import datetime
from pathlib import Path
from urllib.parse import unquote, urlparse

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from google.cloud import storage

from marketplace.core import config

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def parse_database_url(url: str) -> dict:
    parsed = urlparse(url)
    if not parsed.scheme.startswith("postgres") or not parsed.path.strip("/"):
        raise ValueError("DATABASE_URL is not a PostgreSQL URL")
    return {
        "user": unquote(parsed.username or ""),
        "password": unquote(parsed.password or ""),
        "host": parsed.hostname or "localhost",
        "port": str(parsed.port or 5432),
        "database": parsed.path.strip("/"),
    }


def dump_database(db: dict, backup_dir: Path) -> Path:
    backup_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.utcnow().strftime("%Y-%m-%dT%H-%M-%S")
    target = backup_dir / f"backup-{db['database']}-{timestamp}.sql"

    env = {**os.environ, "PGPASSWORD": db["password"]}
    cmd = [
        "pg_dump", "-h", db["host"], "-p", db["port"], "-U", db["user"],
        "-d", db["database"], "-F", "p", "-f", str(target),
    ]
    logger.info(f"Starting backup of database {db['database']}")
    subprocess.run(cmd, env=env, check=True, capture_output=True)
    logger.info(f"Backup saved: {target}")
    return target


def upload_backup(path: Path, bucket_name: str) -> None:
    storage_client = storage.Client()
    bucket = storage_client.bucket(bucket_name)
    blob = bucket.blob(path.name)
    blob.upload_from_filename(str(path))
    logger.info(f"Backup uploaded: gs://{bucket_name}/{path.name}")


def cleanup_old_backups(backup_dir: Path, retention_days: int, now: float = None) -> list:
    """Delete dumps older than retention_days; returns the removed paths."""
    now = time.time() if now is None else now
    cutoff = now - retention_days * 24 * 60 * 60
    removed = []
    for path in backup_dir.glob("backup-*.sql"):
        if path.stat().st_mtime < cutoff:
            path.unlink()
            removed.append(path)
            logger.info(f"Old backup removed: {path.name}")
    return removed


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Back up the marketplace database")
    parser.add_argument("--upload", action="store_true", help="Upload the dump to BACKUP_BUCKET")
    args = parser.parse_args(argv)

    backup_dir = Path(config.BACKUP_DIR)
    try:
        target = dump_database(parse_database_url(config.DATABASE_URL), backup_dir)
    except (ValueError, subprocess.CalledProcessError) as e:
        logger.error(f"Backup failed: {e}")
        return 1

    if args.upload:
        if not config.BACKUP_BUCKET:
            logger.warning("--upload given but BACKUP_BUCKET is not set, skipping upload")
        else:
            try:
                upload_backup(target, config.BACKUP_BUCKET)
            except Exception as e:
                # The local dump is still usable
                logger.error(f"Backup upload failed: {e}")

    cleanup_old_backups(backup_dir, config.BACKUP_RETENTION_DAYS)
    return 0


if __name__ == "__main__":
    sys.exit(main())
