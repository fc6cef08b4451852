"""
Trial folder import: upload every file in a trial folder in one batch.

Usage:
    # Through the running API server
    python scripts/import_trial_folder.py --folder "data/T24-017"

    # In-process, straight against the database
    python scripts/import_trial_folder.py --folder "data/T24-017" --direct

    # Data files only, into an existing trial
    python scripts/import_trial_folder.py --folder "data/extra" --trial-id T24-017
"""

import argparse
import glob
import os
import sys

import requests

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(__file__), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))


def collect_files(folder: str) -> list[tuple[str, bytes]]:
    """Read every regular file in the folder, sorted by name."""
    if not os.path.isdir(folder):
        raise ValueError(f"Folder not found: {folder}")

    files = []
    for path in sorted(glob.glob(os.path.join(folder, "*"))):
        name = os.path.basename(path)
        if not os.path.isfile(path) or name.startswith((".", "~$")):
            continue
        with open(path, "rb") as f:
            files.append((name, f.read()))
    return files


def import_via_api(base_url: str, files: list[tuple[str, bytes]], trial_id: str) -> dict:
    """POST the folder to /api/upload/folder."""
    data = {"trial_id": trial_id} if trial_id else {}
    resp = requests.post(
        f"{base_url}/api/upload/folder",
        files=[("files", (name, content)) for name, content in files],
        data=data,
        timeout=300,
    )
    if resp.status_code != 200:
        raise RuntimeError(f"HTTP {resp.status_code}: {resp.text[:500]}")
    return resp.json()


def import_direct(files: list[tuple[str, bytes]], trial_id: str) -> dict:
    """Run the batch in-process."""
    from services.pipeline_service import get_pipeline_service

    batch = get_pipeline_service().process_batch(files, trial_id=trial_id or None)
    return batch.model_dump(mode="json")


def print_report(batch: dict) -> bool:
    """Print per-file results. Returns True when no file errored."""
    separator = "=" * 60
    print(separator)
    print(f"  TRIAL IMPORT -- {batch.get('trial_id') or 'no trial'}")
    print(separator)

    failed = 0
    for r in batch.get("results", []):
        status = r["status"]
        marker = {"success": "OK  ", "needs_review": "REVW", "error": "FAIL"}.get(status, status)
        records = f" ({r['records']} records)" if r.get("records") is not None else ""
        print(f"  {marker} {r['filename']:<45}{records}")
        if r.get("detail"):
            print(f"         {r['detail']}")
        if r.get("unmapped_columns"):
            print(f"         unmapped: {', '.join(r['unmapped_columns'])}")
        if status == "error":
            failed += 1

    print()
    print(f"{len(batch.get('results', []))} file(s), {failed} failed")
    return failed == 0


def main():
    parser = argparse.ArgumentParser(
        description="Import a trial folder: trial summary first, then lab data files."
    )
    parser.add_argument(
        "--folder",
        required=True,
        help="Path to the trial folder",
    )
    parser.add_argument(
        "--trial-id",
        default="",
        help="Existing trial to load into when the folder has no trial summary",
    )
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the running API server (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--direct",
        action="store_true",
        help="Run the pipeline in-process instead of calling the API",
    )

    args = parser.parse_args()

    try:
        files = collect_files(os.path.abspath(args.folder))
    except ValueError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    if not files:
        print("ERROR: Folder is empty.")
        sys.exit(1)

    print(f"Importing {len(files)} file(s) from {args.folder}")

    try:
        if args.direct:
            batch = import_direct(files, args.trial_id)
        else:
            batch = import_via_api(args.base_url.rstrip("/"), files, args.trial_id)
    except requests.ConnectionError:
        print(f"ERROR: Cannot connect to server at {args.base_url}")
        print("Make sure the server is running: uvicorn main:app --reload")
        sys.exit(1)
    except RuntimeError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    sys.exit(0 if print_report(batch) else 1)


if __name__ == "__main__":
    main()
