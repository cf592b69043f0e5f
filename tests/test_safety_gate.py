import itertools
import unittest

from safety_gate import GateDecision, SafetyGate, SafetyPolicy, classify_request
from scrape_errors import BlockedRequestError
from timetable_config import UrlBuilder

API: str = 'https://mytimetable.mcmaster.ca/api'


class FakeRequest:
    def __init__(self, method: str, url: str) -> None:
        self.method = method
        self.url = url


class FakeRoute:
    def __init__(self, method: str, url: str) -> None:
        self.request = FakeRequest(method, url)
        self.outcome: str | None = None

    def continue_(self) -> None:
        self.outcome = 'continue'

    def abort(self) -> None:
        self.outcome = 'abort'


class TestClassifyRequest(unittest.TestCase):
    """
    Tests the gate's classification table.
    """

    def setUp(self) -> None:
        self.policy: SafetyPolicy = SafetyPolicy.for_urls(UrlBuilder())

    def test_table(self) -> None:
        """
        Checks each row of the table, top to bottom.
        """
        cases: list[tuple[str, str, GateDecision]] = [
            ('GET', 'https://mytimetable.mcmaster.ca/criteria.jsp', GateDecision.PASS),
            ('POST', 'https://www.google-analytics.com/collect', GateDecision.PASS),
            ('POST', f'{API}/report-usage?x=1', GateDecision.DROP),
            ('GET', f'{API}/report-usage', GateDecision.DROP),
            ('GET', f'{API}/class-data?term=3202610', GateDecision.ALLOW),
            ('GET', f'{API}/courses/suggestions?term=3202610', GateDecision.ALLOW),
            ('POST', f'{API}/string-to-filter', GateDecision.ALLOW),
            ('post', f'{API}/string-to-filter', GateDecision.ALLOW),
            ('POST', f'{API}/save-schedule', GateDecision.BLOCK),
            ('PUT', f'{API}/class-data', GateDecision.BLOCK),
            ('DELETE', f'{API}/string-to-filter', GateDecision.BLOCK),
            ('POST', f'{API}/string-to-filter-save', GateDecision.BLOCK),
            ('POST', f'{API}/string-to-filter/extra', GateDecision.BLOCK),
            ('POST', f'{API}/string-to-filter?term=3202610', GateDecision.ALLOW),
        ]
        for method, url, expected in cases:
            with self.subTest(method=method, url=url):
                self.assertEqual(classify_request(self.policy, method, url), expected)

    def test_decisions_do_not_depend_on_call_order(self) -> None:
        """
        Checks that classifying pairs in any order gives the same answers.
        """
        pairs: list[tuple[str, str]] = list(
            itertools.product(
                ['GET', 'POST', 'PUT', 'PATCH'],
                [f'{API}/class-data', f'{API}/string-to-filter', f'{API}/report-usage', 'https://example.com/x'],
            )
        )
        gate = SafetyGate(self.policy)
        forward: dict[tuple[str, str], GateDecision] = {p: gate.decide(*p) for p in pairs}
        backward: dict[tuple[str, str], GateDecision] = {p: gate.decide(*p) for p in reversed(pairs)}
        self.assertEqual(forward, backward)


class TestSafetyGate(unittest.TestCase):
    """
    Tests enforcement for scraper-issued requests and for routed browser requests.
    """

    def setUp(self) -> None:
        self.gate = SafetyGate(SafetyPolicy.for_urls(UrlBuilder()))

    def test_enforce_allows_and_drops(self) -> None:
        self.assertTrue(self.gate.enforce('GET', f'{API}/class-data'))
        self.assertTrue(self.gate.enforce('POST', f'{API}/string-to-filter'))
        self.assertFalse(self.gate.enforce('POST', f'{API}/report-usage'))
        self.assertEqual(self.gate.dropped_count, 1)

    def test_enforce_block_trips_the_gate(self) -> None:
        """
        Checks that a block raises, and that the gate stays tripped for later requests.
        """
        with self.assertRaises(BlockedRequestError) as ctx:
            self.gate.enforce('POST', f'{API}/save-schedule')
        self.assertEqual(ctx.exception.method, 'POST')
        with self.assertRaises(BlockedRequestError):
            self.gate.enforce('GET', f'{API}/class-data')

    def test_route_handler(self) -> None:
        """
        Checks that routed requests are continued, aborted silently, or aborted and recorded.
        """
        allowed = FakeRoute('GET', f'{API}/class-data')
        outside = FakeRoute('POST', 'https://cdn.example.com/beacon')
        telemetry = FakeRoute('POST', f'{API}/report-usage')
        self.gate.handle_route(allowed)
        self.gate.handle_route(outside)
        self.gate.handle_route(telemetry)
        self.assertEqual((allowed.outcome, outside.outcome, telemetry.outcome), ('continue', 'continue', 'abort'))
        self.gate.raise_if_tripped()  # nothing blocked yet

        blocked = FakeRoute('DELETE', f'{API}/enrollment')
        self.gate.handle_route(blocked)
        self.assertEqual(blocked.outcome, 'abort')
        with self.assertRaises(BlockedRequestError):
            self.gate.raise_if_tripped()


if __name__ == '__main__':
    unittest.main()
