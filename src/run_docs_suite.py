#!/usr/bin/env python3

import argparse
import asyncio
import csv
import html
import json
import sys
import zipfile
from datetime import datetime
from pathlib import Path

import scenarios  # noqa: F401  registers the scenarios
from outcomes import InfrastructureError
from runner import SCENARIOS, run_suite, select_scenarios
from suite_config import SuiteSettings


def count_by_status(results_json: dict) -> dict:
    tests = results_json.get("tests", [])
    return {
        "total": len(tests),
        "passed": sum(1 for r in tests if r.get("status") == "passed"),
        "failed": sum(1 for r in tests if r.get("status") == "failed"),
        "skipped": sum(1 for r in tests if r.get("status") == "skipped"),
    }


def write_html_report(results_json: dict, html_path: Path):
    counts = count_by_status(results_json)
    base_url = html.escape(str(results_json.get("base_url", "")))
    browser = html.escape(str(results_json.get("browser", "")))

    report = f"""
<html><head><title>Documentation Site Test Report</title>
<style>
body {{ font-family: Arial, sans-serif; padding: 20px; }}
.summary {{ margin-bottom: 16px; }}
.pass {{ color: #0a7b44; }}
.fail {{ color: #b00020; }}
.skip {{ color: #8a6d00; }}
pre {{ background: #f6f8fa; padding: 12px; border-radius: 6px; overflow: auto; }}
</style>
</head><body>
  <h1>Documentation Site Test Report</h1>
  <p>{base_url} on {browser}</p>
  <div class="summary">
    <strong>Total:</strong> {counts['total']} &nbsp; <strong class="pass">Passed:</strong> {counts['passed']} &nbsp; <strong class="fail">Failed:</strong> {counts['failed']} &nbsp; <strong class="skip">Skipped:</strong> {counts['skipped']}
  </div>
  <hr />
  {''.join(render_test_result(tr) for tr in results_json.get('tests', []))}
</body></html>
"""
    with open(html_path, "w", encoding="utf-8") as f:
        f.write(report)


STATUS_CLASSES = {"passed": "pass", "failed": "fail", "skipped": "skip"}


def render_test_result(test_result: dict) -> str:
    status = test_result.get("status", "unknown")
    status_class = STATUS_CLASSES.get(status, "fail")
    name = html.escape(test_result.get("title") or test_result.get("name", "Unnamed Scenario"))
    label = status.upper()
    if test_result.get("classification") and status == "failed":
        label += f" ({test_result['classification']})"
    error = test_result.get("error", "")
    screenshot = test_result.get("screenshot", "")
    checks_rendered = html.escape(json.dumps(test_result.get("checks", []), indent=2))
    errors = test_result.get("errors", [])
    img_tag = f"<div><img src=\"{html.escape(screenshot)}\" style=\"max-width: 100%; border: 1px solid #ddd;\" /></div>" if screenshot else ""
    error_block = f"<pre>{html.escape(error)}</pre>" if error else ""
    console_block = ""
    if errors:
        console_block = f"""
    <details>
      <summary>Console and network errors ({len(errors)})</summary>
      <pre>{html.escape(json.dumps(errors, indent=2))}</pre>
    </details>"""
    return f"""
  <section>
    <h3 class="{status_class}">{name} — {label}</h3>
    <div>{html.escape(test_result.get('device', ''))}, {test_result.get('elapsed_ms', 0)}ms</div>
    <details>
      <summary>Checks</summary>
      <pre>{checks_rendered}</pre>
    </details>{console_block}
    {img_tag}
    {error_block}
  </section>
  <hr />
"""


def archive_files(zip_path: Path, files: list[Path]):
    with zipfile.ZipFile(zip_path, "w") as zf:
        for f in files:
            if f.exists():
                zf.write(f, arcname=f.name)


def log_to_csv(log_path: Path, timestamp: str, counts: dict, artifacts: dict):
    csv_exists = log_path.exists()
    with open(log_path, "a", newline="") as csvfile:
        writer = csv.writer(csvfile)
        if not csv_exists:
            writer.writerow(["Timestamp", "Total", "Passed", "Failed", "Skipped", "Results", "Report", "Archive"])
        writer.writerow([
            timestamp,
            counts.get("total", 0),
            counts.get("passed", 0),
            counts.get("failed", 0),
            counts.get("skipped", 0),
            str(artifacts.get("results")),
            str(artifacts.get("report")),
            str(artifacts.get("archive")),
        ])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Documentation site scenarios → Runner")
    parser.add_argument("--base-url", help="Base URL under test (default: DOCS_BASE_URL or https://playwright.dev)")
    parser.add_argument("--scenario", action="append", dest="scenarios", help="Run only this scenario (repeatable)")
    parser.add_argument("--list", action="store_true", help="List scenario names and exit")
    parser.add_argument("--headful", action="store_true", help="Run browser headful for debugging")
    parser.add_argument("--browser", choices=["chromium", "firefox", "webkit"], help="Browser engine (default: BROWSER or chromium)")
    parser.add_argument("--workers", type=int, help="Scenarios run in parallel (default: MAX_WORKERS or 3)")
    parser.add_argument("--run-dir", help="Directory for results and artifacts (default: data/runs/run_<timestamp>)")
    parser.add_argument("--verbose", action="store_true", help="Print navigation, resolution and probe logs")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.list:
        for sc in SCENARIOS.values():
            print(f"{sc.name:<24} {sc.device:<10} {sc.title}")
        return 0

    try:
        settings = SuiteSettings.from_env().with_overrides(
            base_url=args.base_url,
            browser=args.browser,
            workers=args.workers,
            headless=False if args.headful else None,
        )
        selected = select_scenarios(args.scenarios)
    except (KeyError, ValueError) as e:
        print(f"✖ {e.args[0] if e.args else e}")
        return 2

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = Path(args.run_dir) if args.run_dir else Path(f"data/runs/run_{timestamp}")
    run_dir.mkdir(parents=True, exist_ok=True)

    print(f"🏃 Running {len(selected)} scenario(s) against {settings.base_url} on {settings.browser}...")
    try:
        results_json = asyncio.run(run_suite(selected, settings, run_dir, verbose=args.verbose))
    except InfrastructureError as e:
        print(f"✖ {e}")
        return 2

    results_path = run_dir / "results.json"
    with open(results_path, "w", encoding="utf-8") as f:
        json.dump(results_json, f, indent=2)
    print(f"📊 Results written: {results_path}")
    artifacts = {"results": results_path}

    report_path = run_dir / "report.html"
    write_html_report(results_json, report_path)
    artifacts["report"] = report_path
    print(f"📝 HTML report: {report_path}")

    archive_path = run_dir / "archive.zip"
    screenshots = sorted((run_dir / "screenshots").glob("*")) if (run_dir / "screenshots").exists() else []
    archive_files(archive_path, [results_path, report_path] + screenshots)
    artifacts["archive"] = archive_path
    print(f"📦 Archive: {archive_path}")

    counts = count_by_status(results_json)
    log_to_csv(run_dir / "run_log.csv", timestamp, counts, artifacts)

    print(f"✅ Done. Total: {counts['total']}, Passed: {counts['passed']}, Failed: {counts['failed']}, Skipped: {counts['skipped']}")
    return 1 if counts["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
