"""
Runs the security fuzzer against the test application.

A clean run must report nothing; a deliberately weakened app must be caught.
"""

import pytest

from fuzzer import SecurityFuzzer
from zeropad import create_app
from config import TestingConfig
from conftest import BASE_URL, FlaskSession


class FuzzConfig(TestingConfig):
    # Input validation alone sends more creates than the default allows
    RATE_LIMIT_CREATE = (60 * 60, 100)


@pytest.fixture
def fuzz_session():
    return FlaskSession(create_app(FuzzConfig).test_client())


def make_fuzzer(session, **kwargs):
    kwargs.setdefault('max_document_size', TestingConfig.MAX_DOCUMENT_SIZE)
    return SecurityFuzzer(BASE_URL, session=session, **kwargs)


class TestCleanRun:

    def test_no_findings(self, fuzz_session):
        fuzzer = make_fuzzer(fuzz_session)

        fuzzer.run_all_tests()

        assert fuzzer.results == {category: [] for category in fuzzer.results}
        assert fuzzer.vulnerabilities_found == 0
        assert fuzzer.total_tests > 0

    def test_report(self, fuzz_session, tmp_path):
        fuzzer = make_fuzzer(fuzz_session)
        fuzzer.run_all_tests(skip_rate_limit=True)
        output = tmp_path / 'report.txt'

        report = fuzzer.generate_report(str(output))

        assert 'SECURITY FUZZING REPORT' in report
        assert 'Write Authorization: PASS' in report
        assert output.read_text() == report


class TestFindings:

    def test_missing_rate_limit_is_reported(self):
        class NoRateLimitConfig(FuzzConfig):
            RATE_LIMIT_ENABLED = False

        session = FlaskSession(create_app(NoRateLimitConfig).test_client())
        fuzzer = make_fuzzer(session, rate_limit_attempts=20)

        fuzzer.test_rate_limiting()

        assert len(fuzzer.results['rate_limiting']) == 1
        assert fuzzer.vulnerabilities_found == 1

    def test_wrong_size_expectation_is_reported(self, fuzz_session):
        """Server limit is 4 KiB, so 1025 characters get 201 where 413 is expected."""
        fuzzer = make_fuzzer(fuzz_session, max_document_size=1024)

        fuzzer.test_size_limit()

        assert len(fuzzer.results['size_limit']) == 1
        assert 'HIGH' == fuzzer.results['size_limit'][0]['severity']

    def test_leakage_detection(self, fuzz_session):
        class FakeResponse:
            text = 'Traceback (most recent call last):\n  File "app.py", line 1'

        fuzzer = make_fuzzer(fuzz_session)
        fuzzer.check_leakage(FakeResponse(), '/documents')

        assert fuzzer.results['information_leakage'][0]['severity'] == 'HIGH'
