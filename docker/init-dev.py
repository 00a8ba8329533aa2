#!/usr/bin/env python3
"""
Initialize the Greenor development environment.

This script:
1. Waits for the API to be ready
2. Uploads a sample 3-Year Plan for a dev user
3. Makes a sample notes document AI-readable
4. Prints what the plan says about the current week
"""

import os
import sys
import time
import uuid

import httpx

API_BASE_URL = os.environ.get("API_BASE_URL", "http://api:8000")
DEV_USER_ID = os.environ.get("DEV_USER_ID", "00000000-0000-0000-0000-0000000000d1")
MAX_RETRIES = 30
RETRY_DELAY = 2

SAMPLE_PLAN = """3-Year Plan

Year 1
January
Week 1
Set up the bookkeeping workflow and import last year's budgets.

March
Week 2
Launch the timesheet pilot with two partner teams.

Year 2
Month 6
Week 1
Expand timesheets to the regional offices.

Year 3
Month 1
Review three-year spend against the original budget.
"""

SAMPLE_NOTES = """Team meeting notes

Agreed to review travel expenses monthly.
Hiring budget for the designer role is approved.
"""


def wait_for_api():
    """Wait for the API to be ready."""
    print(f"Waiting for API at {API_BASE_URL}...")

    for i in range(MAX_RETRIES):
        try:
            response = httpx.get(f"{API_BASE_URL}/health", timeout=5)
            if response.status_code == 200:
                print("API is ready!")
                return True
        except httpx.HTTPError:
            pass

        print(f"  Attempt {i + 1}/{MAX_RETRIES}...")
        time.sleep(RETRY_DELAY)

    print("ERROR: API did not become ready in time")
    return False


def upload_document(client: httpx.Client, filename: str, content: str) -> dict:
    """Upload a plain text document for the dev user."""
    print(f"Uploading {filename}...")

    response = client.post(
        f"{API_BASE_URL}/v0/documents",
        files={"file": (filename, content.encode(), "text/plain")},
    )
    response.raise_for_status()
    result = response.json()
    document = result["document"]
    print(
        f"  Created document {document['id']}: {result['chunks_processed']} chunks, "
        f"year_plan={document['is_year_plan']}, embeddings={result['embedding_count']}"
    )
    return document


def enable_ai_readable(client: httpx.Client, document_id: str) -> dict:
    """Generate embeddings for a document."""
    print(f"Enabling AI readability for {document_id}...")

    response = client.patch(
        f"{API_BASE_URL}/v0/documents/{document_id}",
        json={"is_ai_readable": True},
    )

    if response.status_code == 409:
        print("  Embeddings already being generated")
        return {}

    response.raise_for_status()
    result = response.json()
    print(f"  Embedded {result['embedding_count']}/{result['chunk_count']} chunks")
    return result


def show_plan_week(client: httpx.Client):
    """Print the plan entries for the current week."""
    response = client.get(f"{API_BASE_URL}/v0/plan/week")
    if response.status_code == 404:
        print("  No AI-readable year plan found")
        return

    response.raise_for_status()
    week = response.json()
    print(f"  {week['query']}")
    for result in week["results"]:
        print(f"    [{result['match_type']}] {result['text'][:80]}")


def main():
    """Main initialization routine."""
    print("=" * 60)
    print("Greenor Development Environment Initialization")
    print("=" * 60)
    print()

    if not wait_for_api():
        sys.exit(1)

    print()

    headers = {"X-User-Id": str(uuid.UUID(DEV_USER_ID))}
    with httpx.Client(timeout=60, headers=headers) as client:
        upload_document(client, "three-year-plan.txt", SAMPLE_PLAN)
        notes = upload_document(client, "meeting-notes.txt", SAMPLE_NOTES)
        enable_ai_readable(client, notes["id"])

        print()
        print("This week in the plan:")
        show_plan_week(client)

    print()
    print("=" * 60)
    print("Initialization Complete!")
    print("=" * 60)
    print()
    print("Send requests as the dev user with:")
    print(f"  X-User-Id: {DEV_USER_ID}")


if __name__ == "__main__":
    main()
