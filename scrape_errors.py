"""
Run-fatal error kinds for the class-data harvester.

Per-course problems (resolver misses, `<error>` content) are recorded as outcomes, not raised.
Everything here stops the run; the outcome log makes the next run resume where this one stopped.
"""

SESSION_REFRESH_HINT: str = (
    'Re-establish the MyTimetable session out of band (refresh the storage-state file, '
    'eg auth.storage.json), then rerun; completed courses will be skipped.'
)


class ScrapeError(Exception):
    """
    Base class for conditions that end the run.
    """


class CourseListError(ScrapeError):
    """
    Raised when the course-list input is missing or holds no course codes.
    """


class TemplateCaptureError(ScrapeError):
    """
    Raised when a class-data request template cannot be captured from the UI.
    - The UI never issued the expected request (timeout).
    - Navigation or UI interaction failed.
    - The suggestions listing needed to pick a label was unusable.
    """


class BlockedRequestError(ScrapeError):
    """
    Raised when the safety gate sees an API call that is neither read-only nor the resolver POST.
    """

    def __init__(self, method: str, url: str) -> None:
        self.method: str = method
        self.url: str = url
        super().__init__(f'Blocked non-GET API call: {method} {url}')


class SessionExpiredError(ScrapeError):
    """
    Raised after the in-flight course's failure is recorded, when class-data reports `Not Authorized`.
    """

    def __init__(self, course: str) -> None:
        self.course: str = course
        super().__init__(f'Not Authorized while fetching class-data for ``{course}``: session expired. {SESSION_REFRESH_HINT}')
