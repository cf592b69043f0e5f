import unittest

from course_resolver import NO_RESULT_ERROR, CourseResolver, ResolvedIdentity, ResolveFailure
from session_fakes import FakeSession
from timetable_config import ScrapeConfig, UrlBuilder


class TestCourseResolver(unittest.TestCase):
    """
    Tests resolving human course codes via string-to-filter.
    """

    def resolve(self, course: str, results: dict[str, object]) -> tuple[ResolvedIdentity | ResolveFailure, FakeSession]:
        session = FakeSession(resolver_results=results)
        resolver = CourseResolver(session, ScrapeConfig(), UrlBuilder())  # type: ignore[arg-type]
        return resolver.resolve(course), session

    def test_first_match_wins(self) -> None:
        result, session = self.resolve(
            'BIO 1A03', {'BIO 1A03': [{'cnKey': 2211, 'va': 'x9'}, {'cnKey': 9999, 'va': 'other'}]}
        )
        self.assertEqual(result, ResolvedIdentity(cn_key='2211', va='x9'))
        self.assertEqual(session.count('POST'), 1)

    def test_form_fields(self) -> None:
        _, session = self.resolve('ANTHROP 2SA3', {})
        self.assertEqual(
            session.forms_seen[0],
            {
                'term': '3202610',
                'validations': '',
                'itemnames': 'ANTHROP 2SA3',
                'input': 'anthrop 2sa3',
                'reason': 'CODE_NUMBER',
                'current': '',
                'isimport': '0',
                'strict': '0',
            },
        )
        self.assertEqual(session.headers_seen[0], {'X-Requested-With': 'XMLHttpRequest'})

    def test_empty_list(self) -> None:
        result, _ = self.resolve('FAKE 9999', {'FAKE 9999': []})
        self.assertEqual(result, ResolveFailure(NO_RESULT_ERROR))

    def test_embedded_error(self) -> None:
        result, _ = self.resolve('BIO 9Z99', {'BIO 9Z99': [{'error': 'Course BIO 9Z99 not found in this term'}]})
        self.assertEqual(result, ResolveFailure('Course BIO 9Z99 not found in this term'))

    def test_unparseable_body(self) -> None:
        result, session = self.resolve('BIO 1A03', {'BIO 1A03': '<html>login</html>'})
        self.assertIsInstance(result, ResolveFailure)
        self.assertIn('HTTP 200', result.error)  # type: ignore[union-attr]
        self.assertEqual(session.count('POST'), 1)


if __name__ == '__main__':
    unittest.main()
