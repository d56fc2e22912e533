#!/usr/bin/env python3
"""
Reset an Amigo profile back to a fresh install.

- Clears every stored key (name, age, language, histories, active tasks, points)
- Optionally keeps a .bak copy of each stored file first

Usage:
  python reset_profile.py --root ~/.amigo --backup
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List

from amigo.config import configure_logging, load_config
from amigo.io_state import JsonFileMedium
from amigo.profile_store import ProfileStore


def backup_files(root: Path) -> List[Path]:
    written: List[Path] = []
    if not root.exists():
        return written
    for path in root.glob("*.json"):
        bak = path.with_suffix(path.suffix + ".bak")
        # overwrite old .bak to keep it simple
        bak.write_bytes(path.read_bytes())
        written.append(bak)
    return written


def summarize(store: ProfileStore) -> str:
    profile = store.profile()
    return (
        f"name={profile.user_name!r} age={profile.age} group={profile.age_group} "
        f"language={profile.language!r} moods={len(store.read('moodHistory'))} "
        f"reflections={len(store.read('reflections'))} stories={len(store.read('stories'))} "
        f"points={store.ledger.total}"
    )


def main() -> None:
    config = load_config()
    ap = argparse.ArgumentParser()
    ap.add_argument("--root", type=str, default=str(config.data_dir), help="Data directory holding the <key>.json files")
    ap.add_argument("--backup", action="store_true", help="Copy every stored file to <file>.bak before clearing")
    args = ap.parse_args()

    configure_logging(config.log_level)
    root = Path(args.root).expanduser().resolve()

    store = ProfileStore(JsonFileMedium(root))
    store.initialize()
    before = summarize(store)

    backups: List[Path] = backup_files(root) if args.backup else []

    # .bak files survive: clear() only matches *.json and *.json.tmp
    store.reset_all()

    print("✅ Reset complete.")
    print(f"- Data dir: {root}")
    print(f"- Before:   {before}")
    print(f"- After:    {summarize(store)}")
    if store.persistence_degraded:
        print("- Warning: storage could not be cleared, see log output")
    if backups:
        print(f"- Backups written: {len(backups)}")
        for p in backups:
            print(f"  - {p}")


if __name__ == "__main__":
    main()
