"""
Request a report from a running API server and poll it to completion.

Usage:
    python stemcare/request_report.py <customer_id> <exam_id> [<exam_id> ...]

One exam id requests a health assessment, two or more a comparison. The
markdown (and the PDF with --pdf) is saved next to the current directory.
"""

import argparse
import asyncio
import base64
import sys
from pathlib import Path

import httpx

# Add the repository root to the Python path
package_dir = Path(__file__).parent
sys.path.insert(0, str(package_dir.parent))

from stemcare.app.models.report import ReportKind
from stemcare.app.services.report_poller import ReportPoller

API_URL = "http://localhost:8000"


async def request_report(customer_id: str, exam_ids: list[str], api_url: str, want_pdf: bool):
    kind = ReportKind.HEALTH_ASSESSMENT if len(exam_ids) == 1 else ReportKind.COMPARISON
    print(f"\n[REQUEST] Starting {kind.value} report for customer {customer_id} ({', '.join(exam_ids)})...")

    async with httpx.AsyncClient(base_url=api_url, timeout=30.0) as client:
        response = await client.post(
            f"/api/reports/{kind.value}/generate",
            json={"customerId": customer_id, "inputIds": exam_ids},
        )
        if response.status_code == 409 and "reportId" in response.json():
            report_id = response.json()["reportId"]
            print(f"[INFO] Identical report already requested, polling {report_id}")
        elif response.status_code != 202:
            print(f"[ERROR] Failed with status {response.status_code}")
            print(f"[ERROR] Response: {response.text}")
            return 1
        else:
            report_id = response.json()["reportId"]
            print(f"[INFO] Report {report_id} is processing")

        outcome = await ReportPoller(client).poll(kind, report_id)

        if outcome.timed_out:
            print(f"[INFO] Still processing after {outcome.attempts} poll(s), check back later")
            return 2
        if outcome.status == "failed":
            print(f"[ERROR] Generation failed: {outcome.report.get('errorMessage')}")
            return 1

        output_file = Path(f"report-{report_id}.md")
        output_file.write_text(outcome.report["content"], encoding="utf-8")
        print(f"[SUCCESS] Report completed after {outcome.attempts} poll(s)")
        print(f"[INFO] Saved to: {output_file}")

        if want_pdf:
            response = await client.post(f"/api/reports/{kind.value}/{report_id}/convert-pdf")
            if response.status_code != 200:
                print(f"[ERROR] PDF conversion failed with status {response.status_code}: {response.text}")
                return 1
            pdf_file = Path(f"report-{report_id}.pdf")
            pdf_file.write_bytes(base64.b64decode(response.json()["pdfData"]))
            print(f"[INFO] Saved to: {pdf_file}")

    return 0


def main():
    parser = argparse.ArgumentParser(description="Request a report and poll it to completion")
    parser.add_argument("customer_id")
    parser.add_argument("exam_ids", nargs="+")
    parser.add_argument("--api-url", default=API_URL)
    parser.add_argument("--pdf", action="store_true", help="Also convert the finished report to PDF")
    args = parser.parse_args()

    sys.exit(asyncio.run(request_report(args.customer_id, args.exam_ids, args.api_url, args.pdf)))


if __name__ == "__main__":
    main()
