import argparse
import json
import os
import re
import sys
from pathlib import Path

import requests

from keel.core.config import ADMIN_TOKEN, DATA_DIR, DEFAULT_BASE_URL, MANIFEST_PATH

API_PREFIX = "/api/v1/admin/imports"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Dependency ordering (lower means earlier)
ENTITY_PHASE_ORDER = {
    "vessels": 10,
    "cadets": 20,
    "tasks": 30,
    "assignments": 40,
}

# Filename → entity patterns (fallback when no manifest override)
PATTERNS = [
    # checked in order: "cadet_assignments.xlsx" is an assignments file
    (r"(^|/)[^/]*assignments?[^/]*\.xlsx$", "assignments"),
    (r"(^|/)vessels?[^/]*\.xlsx$", "vessels"),
    (r"(^|/)cadets?[^/]*\.xlsx$", "cadets"),
    (r"(^|/)(trb_)?tasks?[^/]*\.xlsx$", "tasks"),
]


def infer_entity(path: str) -> str | None:
    p = path.replace("\\", "/")
    for pat, ent in PATTERNS:
        if re.search(pat, p, flags=re.IGNORECASE):
            return ent
    return None


def load_manifest(manifest_path: str):
    if not manifest_path or not os.path.isfile(manifest_path):
        return None
    with open(manifest_path, "r", encoding="utf-8") as f:
        return json.load(f)


def discover_workbooks(root: str):
    # "~$name.xlsx" are Excel lock files
    return sorted(
        str(p) for p in Path(root).rglob("*.xlsx")
        if not p.name.startswith("~$")
    )


def classify_files(files: list[str], manifest: dict | None):
    classified = []
    override_map = {}
    if manifest and "overrides" in manifest:
        for ov in manifest["overrides"]:
            override_map[os.path.normpath(ov["file"])] = ov["entity"]

    for f in files:
        nf = os.path.normpath(f)
        entity = override_map.get(nf) or infer_entity(nf)
        if not entity:
            print(f"[skip] Unrecognized workbook (no entity match): {f}")
            continue
        order = ENTITY_PHASE_ORDER.get(entity, 9999)
        classified.append({"path": nf, "entity": entity, "order": order})
    classified.sort(key=lambda x: (x["order"], x["path"]))
    return classified


def _summary_line(data: dict) -> str:
    s = data.get("summary") or {}
    return "  ".join(f"{k}={v}" for k, v in s.items())


def import_file(base_url: str, entity: str, path: str, token: str | None = None,
                commit: bool = False, dry_run: bool = False) -> bool:
    action = "commit" if commit else "preview"
    url = f"{base_url.rstrip('/')}{API_PREFIX}/{entity}/{action}"
    if dry_run:
        print(f"[dry-run] POST {url}  file={path}")
        return True

    headers = {"Authorization": f"Bearer {token}"} if token else {}
    with open(path, "rb") as f:
        files = {"file": (os.path.basename(path), f, XLSX_MEDIA_TYPE)}
        resp = requests.post(url, files=files, headers=headers, timeout=120)

    try:
        body = resp.json()
    except ValueError:
        body = {}

    if resp.status_code == 200 and body.get("success"):
        data = body.get("data") or {}
        fails = (data.get("summary") or {}).get("fail", 0)
        tag = "ok" if not fails else "FAIL"
        print(f"[{tag}] {action:<7} {entity:<12} ← {path}\n      {_summary_line(data)}")
        for note in data.get("notes") or []:
            print(f"      - {note}")
        return not fails

    message = body.get("message") or resp.text[:400]
    print(f"[ERR] {action:<7} {entity:<12} ← {path}\n      {resp.status_code} {message}")
    return False


def run_import(data_dir: str = DATA_DIR,
               base_url: str = DEFAULT_BASE_URL,
               manifest_path: str = MANIFEST_PATH,
               token: str | None = ADMIN_TOKEN,
               commit: bool = False,
               dry_run: bool = False) -> dict:
    """Callable entrypoint: returns a dict with plan and results."""
    manifest = load_manifest(manifest_path)
    if manifest and "base_url" in manifest and base_url == DEFAULT_BASE_URL:
        base_url = manifest["base_url"]

    workbooks = discover_workbooks(data_dir)
    if not workbooks:
        return {
            "ok": False,
            "base_url": base_url,
            "plan": [],
            "results": [],
            "message": f"No .xlsx workbooks found under {data_dir}",
        }
    plan = classify_files(workbooks, manifest)
    if not plan:
        return {
            "ok": False,
            "base_url": base_url,
            "plan": [],
            "results": [],
            "message": f"Found {len(workbooks)} workbooks but none matched known entities. Check file names or manifest.",
        }

    results = []
    ok_all = True
    for item in plan:
        ok = import_file(base_url, item["entity"], item["path"], token=token, commit=commit, dry_run=dry_run)
        results.append({"entity": item["entity"], "path": item["path"], "ok": ok})
        if not ok:
            ok_all = False
            # later phases depend on earlier ones
            if commit:
                break
    return {"ok": ok_all, "base_url": base_url, "plan": plan, "results": results}


def main(argv=None):
    ap = argparse.ArgumentParser(description="Preview or commit Keel import workbooks in dependency order.")
    ap.add_argument("--data", default=DATA_DIR, help="Root data folder (default env DATA_DIR or /app/data)")
    ap.add_argument("--base-url", default=None, help="API base URL (default env IMPORT_BASE_URL or http://localhost:8000)")
    ap.add_argument("--manifest", default=MANIFEST_PATH, help="Optional import_manifest.json path")
    ap.add_argument("--token", default=ADMIN_TOKEN, help="Admin access token (default env KEEL_ADMIN_TOKEN)")
    ap.add_argument("--commit", action="store_true", help="Commit instead of preview")
    ap.add_argument("--dry-run", action="store_true", help="Don't POST, just show the plan")
    args = ap.parse_args(argv)

    base_url = args.base_url or DEFAULT_BASE_URL
    summary = run_import(data_dir=args.data, base_url=base_url, manifest_path=args.manifest,
                         token=args.token, commit=args.commit, dry_run=args.dry_run)

    print(f"API: {summary['base_url']}")
    print(f"Data root: {args.data}  Mode: {'commit' if args.commit else 'preview'}")
    if summary.get("message"):
        print(summary["message"])
    print("— Import plan —")
    for item in summary["plan"]:
        print(f"{item['order']:>3}  {item['entity']:<12}  {item['path']}")
    sys.exit(0 if summary["ok"] else 2)


if __name__ == "__main__":
    main()
