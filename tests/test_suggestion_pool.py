import unittest

from scrape_errors import TemplateCaptureError
from session_fakes import SUGGESTIONS_XML, FakeSession, fixture_text
from suggestion_pool import SuggestionLister, SuggestionPool, parse_suggestion_labels, prime_pool
from timetable_config import ScrapeConfig, UrlBuilder

EMPTY_XML: str = '<?xml version="1.0"?><add_suggest><results></results></add_suggest>'


class TestParseLabels(unittest.TestCase):
    def test_parses_fixture(self) -> None:
        """
        Checks that labels come back in order, with empty `rs` elements skipped.
        """
        self.assertEqual(parse_suggestion_labels(SUGGESTIONS_XML), ['ANTHROP 2SA3', 'BIO 1A03', 'CHEM 1A03'])

    def test_missing_results_is_empty(self) -> None:
        self.assertEqual(parse_suggestion_labels('<add_suggest/>'), [])

    def test_malformed_xml(self) -> None:
        with self.assertRaises(TemplateCaptureError):
            parse_suggestion_labels('<add_suggest><results>')


class TestSuggestionPool(unittest.TestCase):
    def make_lister(self, session: FakeSession) -> SuggestionLister:
        return SuggestionLister(session, ScrapeConfig(), UrlBuilder())  # type: ignore[arg-type]

    def test_lister_sends_term_and_campus(self) -> None:
        session = FakeSession()
        self.make_lister(session).fetch_labels()
        url: str = session.calls[0][1]
        self.assertIn('term=3202610', url)
        self.assertIn('course_add=a', url)
        self.assertEqual(session.headers_seen[0], {'X-Requested-With': 'XMLHttpRequest'})

    def test_next_pops_in_order_without_touching_the_old_pool(self) -> None:
        session = FakeSession()
        lister: SuggestionLister = self.make_lister(session)
        pool: SuggestionPool = prime_pool(lister)
        first, pool_after = pool.next(lister)
        second, _ = pool_after.next(lister)
        self.assertEqual((first, second), ('ANTHROP 2SA3', 'BIO 1A03'))
        self.assertEqual(pool.position, 0)
        self.assertEqual(pool_after.remaining, 2)
        self.assertEqual(session.count('GET', '/api/courses/suggestions'), 1)

    def test_exhausted_pool_refills(self) -> None:
        """
        Checks that popping past the end fetches a fresh listing and pops from it.
        """
        session = FakeSession(suggestion_batches=[SUGGESTIONS_XML, fixture_text('suggestions_refill.xml')])
        lister: SuggestionLister = self.make_lister(session)
        pool: SuggestionPool = prime_pool(lister)
        labels: list[str] = []
        for _ in range(4):
            label, pool = pool.next(lister)
            labels.append(label)
        self.assertEqual(labels, ['ANTHROP 2SA3', 'BIO 1A03', 'CHEM 1A03', 'COMPSCI 1MD3'])
        self.assertEqual(session.count('GET', '/api/courses/suggestions'), 2)

    def test_empty_listing_is_fatal(self) -> None:
        lister: SuggestionLister = self.make_lister(FakeSession(suggestion_batches=[EMPTY_XML]))
        with self.assertRaises(TemplateCaptureError):
            SuggestionPool().next(lister)

    def test_listing_http_error_is_fatal(self) -> None:
        lister: SuggestionLister = self.make_lister(FakeSession(suggestion_status=500))
        with self.assertRaises(TemplateCaptureError):
            prime_pool(lister)


if __name__ == '__main__':
    unittest.main()
