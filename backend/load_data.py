"""
Data Loader Script - bulk-registers students through the API.

Reads a JSON array of student records and POSTs each one to
/api/students, so every student gets a freshly issued QR code. Students
whose email is already registered are reported and skipped.

Input record shape:
    {"name": ..., "email": ..., "phone": ..., "college": ..., "department": ...}

Usage:
    python load_data.py students.json                          # Uses default URL
    python load_data.py students.json http://localhost:8000     # Custom API URL
"""

import json
import os
import sys

import httpx

FIELDS = ("name", "email", "phone", "college", "department")


def register_all(client: httpx.Client, students: list) -> dict:
    """Register each student; returns counts and per-student outcomes."""
    summary = {"registered": 0, "duplicates": 0, "errors": 0, "details": []}

    for record in students:
        payload = {field: str(record.get(field) or "").strip() for field in FIELDS}
        resp = client.post("/api/students", json=payload)

        if resp.status_code == 201:
            summary["registered"] += 1
            status = "REGISTERED"
        elif resp.status_code == 409:
            summary["duplicates"] += 1
            status = "DUPLICATE"
        else:
            summary["errors"] += 1
            status = "ERROR"
        summary["details"].append({
            "email": payload["email"],
            "status": status,
            "detail": resp.json().get("detail") if status == "ERROR" else None,
        })

    return summary


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    data_file = sys.argv[1]
    api_url = sys.argv[2] if len(sys.argv) > 2 else os.getenv("API_URL", "http://localhost:8000")

    if not os.path.exists(data_file):
        print(f"Error: Could not find {data_file}")
        sys.exit(1)

    print(f"Loading students from: {data_file}")
    with open(data_file, 'r') as f:
        students = json.load(f)

    print(f"Found {len(students)} students to register")
    print(f"Sending to: {api_url}")
    print()

    with httpx.Client(base_url=api_url, timeout=30.0) as client:
        result = register_all(client, students)

    print("=" * 60)
    print("REGISTRATION SUMMARY")
    print("=" * 60)
    print(f"  Total Received:   {len(students)}")
    print(f"  Registered:       {result['registered']}")
    print(f"  Already existing: {result['duplicates']}")
    print(f"  Errors:           {result['errors']}")
    print("=" * 60)
    print()

    for d in result["details"]:
        icon = '✅' if d["status"] == 'REGISTERED' else ('🔁' if d["status"] == 'DUPLICATE' else '❌')
        extra = f" ({d['detail']})" if d["detail"] else ''
        print(f"  {icon} {d['email']}: {d['status']}{extra}")


if __name__ == "__main__":
    main()
