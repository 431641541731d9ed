"""Assertion evaluation for probe responses."""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..schemas.monitor import MonitorAssertions


@dataclass
class AssertionResult:
    """Per-criterion outcome of evaluating a response.

    Criteria that are not configured are left as None and count as passed.
    The status code criterion is always evaluated.
    """
    status_code_passed: bool
    response_time_passed: Optional[bool] = None
    body_contains_passed: Optional[bool] = None
    body_not_contains_passed: Optional[bool] = None
    failures: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.failures

    @property
    def error(self) -> Optional[str]:
        return "; ".join(self.failures) if self.failures else None

    @property
    def only_response_time_failed(self) -> bool:
        """True when latency is the sole failing criterion."""
        return (
            self.response_time_passed is False
            and self.status_code_passed
            and self.body_contains_passed is not False
            and self.body_not_contains_passed is not False
        )


def evaluate_assertions(
    status_code: int,
    response_time_ms: int,
    body: str,
    expected_status_codes: Iterable[int],
    assertions: Optional[MonitorAssertions] = None,
) -> AssertionResult:
    """Check a response against a monitor's expectations.

    Substring checks are literal and case-sensitive. Failure descriptions
    are collected in a fixed order: status code, response time,
    body contains, body not contains.
    """
    expected = list(expected_status_codes)
    result = AssertionResult(status_code_passed=status_code in expected)

    if not result.status_code_passed:
        expected_str = ", ".join(str(code) for code in expected)
        result.failures.append(
            f"Unexpected status code {status_code} (expected: {expected_str})"
        )

    if assertions is None:
        return result

    if assertions.max_response_time_ms is not None:
        result.response_time_passed = response_time_ms <= assertions.max_response_time_ms
        if not result.response_time_passed:
            result.failures.append(
                f"Response time {response_time_ms}ms exceeded "
                f"{assertions.max_response_time_ms}ms threshold"
            )

    if assertions.body_contains is not None:
        result.body_contains_passed = assertions.body_contains in body
        if not result.body_contains_passed:
            result.failures.append(
                f'Response body does not contain "{assertions.body_contains}"'
            )

    if assertions.body_not_contains is not None:
        result.body_not_contains_passed = assertions.body_not_contains not in body
        if not result.body_not_contains_passed:
            result.failures.append(
                f'Response body contains forbidden string "{assertions.body_not_contains}"'
            )

    return result
