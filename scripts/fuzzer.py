#!/usr/bin/env python3
"""
Security Fuzzing Script for Zeropad
===================================

Black-box probe of a running Zeropad API (DAST). It never needs a key:
everything it sends is either garbage or ciphertext it produced itself.

Checks included:
- Input validation (malformed JSON, wrong types, non-base64 content)
- Size limit enforcement
- Path traversal and malformed document ids
- Write authorization (missing and forged write tokens)
- Information leakage in error responses
- Security headers
- Rate limiting

Usage:
    python fuzzer.py --url http://localhost:5001
    python fuzzer.py --url http://localhost:5001 --output report.txt
    python fuzzer.py --url http://localhost:5001 --skip-rate-limit
"""

import argparse
import re
import sys
from datetime import datetime

import requests
import urllib3

from zeropad.crypto import (
    encrypt, generate_key, generate_write_token, hash_write_token
)

# Disable SSL warnings for self-signed certs in testing
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


# ============================================================================
# PAYLOAD DEFINITIONS
# ============================================================================

# Bodies that must be rejected with 400
MALFORMED_BODIES = [
    {},
    {'encryptedContent': ''},
    {'encryptedContent': None},
    {'encryptedContent': 12345},
    {'encryptedContent': ['a', 'b']},
    {'encryptedContent': {'nested': 'object'}},
    {'encryptedContent': '<script>alert(1)</script>'},
    {'encryptedContent': "' OR '1'='1"},
    {'encryptedContent': 'abc', 'writeTokenHash': 'short'},
    {'encryptedContent': 'abc', 'writeTokenHash': 42},
]

# Raw (non-JSON) bodies that must be rejected with 400
RAW_BODIES = [
    'not json at all',
    '{"encryptedContent": ',
    '[1, 2, 3]',
    'null',
]

# Document ids that must never produce anything but 404
PATH_TRAVERSAL_IDS = [
    "../../../etc/passwd",
    "..%2f..%2f..%2fetc%2fpasswd",
    "....//....//etc/passwd",
    "%00",
    "' OR '1'='1",
    "00000000000000000000000000000000",
    "ZZZZZZZZZZZZZZZZZZZZZZZZZZZZZZZZ",
    "a" * 500,
]

# Error text that should never reach a client
LEAK_PATTERNS = [
    r"Traceback \(most recent call last\)",
    r"File \".*\.py\"",
    r"sqlalchemy",
    r"SQLite.*error",
    r"PostgreSQL.*ERROR",
    r"werkzeug\.exceptions",
]

REQUIRED_HEADERS = {
    'X-Frame-Options': ['DENY', 'SAMEORIGIN'],
    'X-Content-Type-Options': ['nosniff'],
    'Content-Security-Policy': None,   # Just check presence
    'Referrer-Policy': ['no-referrer'],
}


class SecurityFuzzer:
    """
    Main fuzzer class that coordinates security testing.

    Args:
        base_url: Root URL of the target API
        session: requests.Session or compatible object
        verbose: Print every step, not just findings
        rate_limit_attempts: Requests to send before declaring rate
            limiting absent
        max_document_size: Size limit the server is expected to enforce
    """

    def __init__(self, base_url, session=None, verbose=False,
                 rate_limit_attempts=120, max_document_size=10 * 1024 * 1024):
        self.base_url = base_url.rstrip('/')
        self.session = session if session is not None else requests.Session()
        self.verbose = verbose
        self.rate_limit_attempts = rate_limit_attempts
        self.max_document_size = max_document_size
        self.results = {
            'input_validation': [],
            'size_limit': [],
            'path_traversal': [],
            'write_authorization': [],
            'information_leakage': [],
            'security_headers': [],
            'rate_limiting': [],
        }
        self.total_tests = 0
        self.vulnerabilities_found = 0

    def log(self, msg, level='INFO'):
        """Print log message if verbose mode is on."""
        if self.verbose or level in ['WARNING', 'CRITICAL']:
            timestamp = datetime.now().strftime('%H:%M:%S')
            print(f"[{timestamp}] [{level}] {msg}")

    def make_request(self, method, endpoint, **kwargs):
        """Make HTTP request with error handling."""
        url = f"{self.base_url}{endpoint}"
        kwargs.setdefault('timeout', 10)

        try:
            return getattr(self.session, method.lower())(url, **kwargs)
        except requests.RequestException as e:
            self.log(f"Request failed: {e}", 'WARNING')
            return None

    def record(self, category, endpoint, evidence, severity='MEDIUM', payload=None):
        finding = {'endpoint': endpoint, 'evidence': evidence, 'severity': severity}
        if payload is not None:
            finding['payload'] = str(payload)
        self.results[category].append(finding)
        self.vulnerabilities_found += 1
        level = 'CRITICAL' if severity in ('HIGH', 'CRITICAL') else 'WARNING'
        self.log(f"{category.upper()}: {endpoint} - {evidence}", level)

    def check_leakage(self, response, endpoint):
        """Flag responses that expose stack traces or database errors."""
        if response is None:
            return
        for pattern in LEAK_PATTERNS:
            if re.search(pattern, response.text, re.IGNORECASE):
                self.record('information_leakage', endpoint,
                            f"Response matches {pattern!r}", 'HIGH')
                return

    def create_document(self, with_token=True):
        """Create a real document. Returns (id, write_token) or (None, None)."""
        key = generate_key()
        token = generate_write_token() if with_token else None
        body = {'encryptedContent': encrypt('fuzzer probe', key)}
        if token:
            body['writeTokenHash'] = hash_write_token(token)

        response = self.make_request('POST', '/documents', json=body)
        if response is None or response.status_code != 201:
            self.log("Could not create probe document", 'WARNING')
            return None, None
        return response.json()['id'], token

    # ------------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------------

    def test_input_validation(self):
        """Malformed bodies must get 400, never 2xx or 5xx."""
        self.log("Testing input validation")

        for body in MALFORMED_BODIES:
            self.total_tests += 1
            response = self.make_request('POST', '/documents', json=body)
            if response is None:
                continue
            self.check_leakage(response, '/documents')
            if response.status_code == 429:
                self.log("Rate limited during input validation, stopping", 'WARNING')
                return
            if response.status_code != 400:
                self.record('input_validation', '/documents',
                            f"Expected 400, got {response.status_code}",
                            'HIGH' if response.status_code < 400 else 'MEDIUM',
                            payload=body)

        for raw in RAW_BODIES:
            self.total_tests += 1
            response = self.make_request(
                'POST', '/documents', data=raw,
                headers={'Content-Type': 'application/json'})
            if response is None:
                continue
            self.check_leakage(response, '/documents')
            if response.status_code == 429:
                return
            if response.status_code != 400:
                self.record('input_validation', '/documents',
                            f"Expected 400 for raw body, got {response.status_code}",
                            payload=raw)

    def test_size_limit(self):
        """Content one character over the limit must get 413."""
        self.log("Testing size limit")
        self.total_tests += 1

        body = {'encryptedContent': 'A' * (self.max_document_size + 1)}
        response = self.make_request('POST', '/documents', json=body)
        if response is None or response.status_code == 429:
            return
        self.check_leakage(response, '/documents')
        if response.status_code != 413:
            self.record('size_limit', '/documents',
                        f"Oversized content got {response.status_code}, expected 413",
                        'HIGH' if response.status_code < 400 else 'MEDIUM')

    def test_path_traversal(self):
        """Odd document ids must get 404 on read and write."""
        self.log("Testing path traversal / malformed ids")

        for document_id in PATH_TRAVERSAL_IDS:
            for method in ('GET', 'PUT'):
                self.total_tests += 1
                kwargs = {}
                if method == 'PUT':
                    kwargs['json'] = {'encryptedContent': 'QUJD'}
                response = self.make_request(method, f'/documents/{document_id}', **kwargs)
                if response is None:
                    continue
                self.check_leakage(response, f'/documents/{document_id}')
                if response.status_code == 429:
                    continue
                if response.status_code not in (404, 405):
                    self.record('path_traversal', f'/documents/{document_id}',
                                f"{method} got {response.status_code}, expected 404",
                                'HIGH' if response.status_code < 400 else 'MEDIUM',
                                payload=document_id)

    def test_write_authorization(self):
        """Updates without the right write token must get 401."""
        self.log("Testing write authorization")

        document_id, token = self.create_document(with_token=True)
        if document_id is None:
            return

        attempts = [
            ('missing token', {}),
            ('empty token', {'writeToken': ''}),
            ('forged token', {'writeToken': generate_write_token()}),
            ('token hash as token', {'writeToken': hash_write_token(token)}),
        ]

        for label, extra in attempts:
            self.total_tests += 1
            body = {'encryptedContent': 'QUJDREVG'}
            body.update(extra)
            response = self.make_request('PUT', f'/documents/{document_id}', json=body)
            if response is None or response.status_code == 429:
                continue
            self.check_leakage(response, f'/documents/{document_id}')
            if response.status_code != 401:
                self.record('write_authorization', f'/documents/{document_id}',
                            f"Update with {label} got {response.status_code}, expected 401",
                            'CRITICAL' if response.status_code < 400 else 'MEDIUM')

        # The correct token must still work
        self.total_tests += 1
        response = self.make_request('PUT', f'/documents/{document_id}',
                                     json={'encryptedContent': 'QUJDREVG', 'writeToken': token})
        if response is not None and response.status_code not in (200, 429):
            self.record('write_authorization', f'/documents/{document_id}',
                        f"Update with the correct token got {response.status_code}", 'LOW')

    def test_security_headers(self):
        """Test for presence and correctness of security headers."""
        self.log("Testing security headers")

        response = self.make_request('GET', '/documents/00000000000000000000000000000000')
        if response is None:
            return

        self.total_tests += 1

        missing_headers = []
        incorrect_headers = []

        for header_name, expected_values in REQUIRED_HEADERS.items():
            header_value = response.headers.get(header_name)

            if not header_value:
                missing_headers.append(header_name)
            elif expected_values and header_value not in expected_values:
                incorrect_headers.append(
                    f"{header_name}: got '{header_value}', expected one of {expected_values}")

        if missing_headers or incorrect_headers:
            self.record('security_headers', '/documents/<id>',
                        f"Missing {missing_headers}, incorrect {incorrect_headers}")
        else:
            self.log("All security headers present and correct", 'INFO')

    def test_rate_limiting(self):
        """Burst reads until a 429 with Retry-After shows up."""
        self.log("Testing rate limiting")

        for attempt in range(1, self.rate_limit_attempts + 1):
            self.total_tests += 1
            response = self.make_request('GET', '/documents/00000000000000000000000000000000')
            if response is None:
                continue
            if response.status_code == 429:
                if not response.headers.get('Retry-After'):
                    self.record('rate_limiting', '/documents/<id>',
                                "429 without Retry-After header", 'LOW')
                self.log(f"Rate limiting triggered after {attempt} requests", 'INFO')
                return

        self.record('rate_limiting', '/documents/<id>',
                    f"Rate limiting not triggered after {self.rate_limit_attempts} requests")

    def run_all_tests(self, skip_rate_limit=False):
        """Run all security tests. Returns the duration in seconds."""
        self.log(f"SECURITY FUZZER - Starting scan of {self.base_url}")
        start_time = datetime.now()

        self.test_security_headers()
        self.test_write_authorization()
        self.test_input_validation()
        self.test_size_limit()
        self.test_path_traversal()
        if not skip_rate_limit:
            # Last: it exhausts this client's read quota
            self.test_rate_limiting()

        return (datetime.now() - start_time).total_seconds()

    def generate_report(self, output_file=None):
        """Generate a security report."""
        report_lines = []

        report_lines.append("=" * 70)
        report_lines.append("SECURITY FUZZING REPORT")
        report_lines.append("=" * 70)
        report_lines.append(f"\nTarget: {self.base_url}")
        report_lines.append(f"Date: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        report_lines.append(f"Total Tests Run: {self.total_tests}")
        report_lines.append(f"Potential Vulnerabilities Found: {self.vulnerabilities_found}")

        report_lines.append("\n" + "-" * 50)
        report_lines.append("SUMMARY BY CATEGORY")
        report_lines.append("-" * 50)

        categories = [
            ('Input Validation', 'input_validation'),
            ('Size Limit', 'size_limit'),
            ('Path Traversal', 'path_traversal'),
            ('Write Authorization', 'write_authorization'),
            ('Information Leakage', 'information_leakage'),
            ('Security Headers', 'security_headers'),
            ('Rate Limiting', 'rate_limiting'),
        ]

        for name, key in categories:
            count = len(self.results[key])
            status = "PASS" if count == 0 else f"{count} ISSUE(S)"
            report_lines.append(f"  {name}: {status}")

        for name, key in categories:
            if self.results[key]:
                report_lines.append(f"\n{'='*50}")
                report_lines.append(f"DETAILED FINDINGS: {name.upper()}")
                report_lines.append("=" * 50)

                for i, vuln in enumerate(self.results[key], 1):
                    report_lines.append(f"\n[{i}] Severity: {vuln.get('severity', 'UNKNOWN')}")
                    report_lines.append(f"    Endpoint: {vuln.get('endpoint', 'N/A')}")
                    if 'payload' in vuln:
                        report_lines.append(f"    Payload: {vuln['payload'][:50]}")
                    report_lines.append(f"    Evidence: {vuln.get('evidence', 'N/A')}")

        report_lines.append("\n" + "=" * 70)
        report_lines.append("END OF REPORT")
        report_lines.append("=" * 70)

        report_text = "\n".join(report_lines)

        if output_file:
            with open(output_file, 'w') as f:
                f.write(report_text)
            print(f"\nReport saved to: {output_file}")

        return report_text


def main():
    """Main entry point for the fuzzer."""
    parser = argparse.ArgumentParser(
        description='Security Fuzzer for the Zeropad API',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --url http://localhost:5001
  %(prog)s --url http://localhost:5001 --output report.txt
  %(prog)s --url https://pad.example.com --verbose --skip-rate-limit
        """
    )

    parser.add_argument('--url', '-u', required=True,
                        help='Base URL of the target API')
    parser.add_argument('--output', '-o',
                        help='Output file for the report')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose output')
    parser.add_argument('--max-size', type=int, default=10 * 1024 * 1024,
                        help='Document size limit the server should enforce')
    parser.add_argument('--skip-rate-limit', action='store_true',
                        help='Do not burst requests to trigger rate limiting')

    args = parser.parse_args()

    fuzzer = SecurityFuzzer(
        args.url,
        verbose=args.verbose,
        max_document_size=args.max_size,
    )

    try:
        duration = fuzzer.run_all_tests(skip_rate_limit=args.skip_rate_limit)
        report = fuzzer.generate_report(args.output)

        print(report)
        print(f"\nScan completed in {duration:.2f} seconds")

        # Exit with error code if vulnerabilities found
        if fuzzer.vulnerabilities_found > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\nScan interrupted by user")
        sys.exit(130)


if __name__ == '__main__':
    main()
