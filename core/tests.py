import json

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import IntegrityError
from django.http import Http404
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from django_ratelimit.exceptions import Ratelimited

from accounts.models import User

from .api import camelize, decamelize, paginate, parse_json_body, query_int, to_camel, to_snake
from .exceptions import Conflict, DivisionInvalid, NotFound, StudentNotFound, ValidationFailed
from .forms import IdListField, IsoDateField
from .middleware import ApiErrorMiddleware


class CaseConversionTests(SimpleTestCase):
    """Tests for camelCase <-> snake_case key conversion."""

    def test_to_camel(self):
        """Test snake_case names become camelCase."""
        self.assertEqual(to_camel('marks_obtained'), 'marksObtained')
        self.assertEqual(to_camel('id'), 'id')
        self.assertEqual(to_camel('total_max_marks'), 'totalMaxMarks')

    def test_to_snake(self):
        """Test camelCase names become snake_case."""
        self.assertEqual(to_snake('studentId'), 'student_id')
        self.assertEqual(to_snake('isPublished'), 'is_published')
        self.assertEqual(to_snake('page'), 'page')

    def test_camelize_nested(self):
        """Test nested dicts and lists are converted recursively."""
        data = {'class_stats': {'top_performers': [{'student_id': 1}]}}
        self.assertEqual(
            camelize(data),
            {'classStats': {'topPerformers': [{'studentId': 1}]}}
        )

    def test_decamelize_leaves_values_alone(self):
        """Test only keys are converted, never string values."""
        self.assertEqual(
            decamelize({'testType': 'midTerm', 'marks': [{'marksObtained': 5}]}),
            {'test_type': 'midTerm', 'marks': [{'marks_obtained': 5}]}
        )


class ParseJsonBodyTests(SimpleTestCase):
    """Tests for decoding request bodies."""

    def setUp(self):
        self.factory = RequestFactory()

    def test_valid_object(self):
        """Test a JSON object is decoded to snake_case."""
        request = self.factory.post('/api/x/', data=json.dumps({'maxMarks': 100}),
                                    content_type='application/json')
        self.assertEqual(parse_json_body(request), {'max_marks': 100})

    def test_empty_body(self):
        """Test an empty body is an empty dict."""
        request = self.factory.post('/api/x/', data='', content_type='application/json')
        self.assertEqual(parse_json_body(request), {})

    def test_invalid_json(self):
        """Test malformed JSON raises ValidationFailed."""
        request = self.factory.post('/api/x/', data='{nope', content_type='application/json')
        with self.assertRaises(ValidationFailed):
            parse_json_body(request)

    def test_array_body_rejected(self):
        """Test a JSON array is not accepted as a body."""
        request = self.factory.post('/api/x/', data='[1, 2]', content_type='application/json')
        with self.assertRaises(ValidationFailed):
            parse_json_body(request)

    def test_query_int(self):
        """Test optional integer query parameters."""
        self.assertIsNone(query_int(self.factory.get('/api/x/'), 'year'))
        self.assertEqual(query_int(self.factory.get('/api/x/', {'year': '2'}), 'year'), 2)
        with self.assertRaises(ValidationFailed):
            query_int(self.factory.get('/api/x/', {'year': 'two'}), 'year')


@override_settings(API_DEFAULT_PAGE_SIZE=2, API_MAX_PAGE_SIZE=3)
class PaginateTests(TestCase):
    """Tests for page/limit pagination."""

    def setUp(self):
        self.factory = RequestFactory()
        for i in range(5):
            User.objects.create_student(email=f's{i}@example.com', password='pass1234', name=f'Student {i}')
        self.users = User.objects.order_by('pk')

    def test_default_page(self):
        """Test the first page uses the default size."""
        items, meta = paginate(self.factory.get('/api/x/'), self.users)
        self.assertEqual(len(items), 2)
        self.assertEqual(meta, {'total_pages': 3, 'current_page': 1, 'total': 5})

    def test_limit_is_capped(self):
        """Test limit cannot exceed the maximum page size."""
        items, meta = paginate(self.factory.get('/api/x/', {'limit': '50'}), self.users)
        self.assertEqual(len(items), 3)
        self.assertEqual(meta['total_pages'], 2)

    def test_page_beyond_end_is_empty(self):
        """Test a page past the end returns no items rather than an error."""
        items, meta = paginate(self.factory.get('/api/x/', {'page': '9'}), self.users)
        self.assertEqual(items, [])
        self.assertEqual(meta['current_page'], 9)
        self.assertEqual(meta['total'], 5)

    def test_bad_values_fall_back(self):
        """Test non-numeric page and limit use the defaults."""
        items, meta = paginate(self.factory.get('/api/x/', {'page': 'x', 'limit': '-1'}), self.users)
        self.assertEqual(len(items), 2)
        self.assertEqual(meta['current_page'], 1)


class IdListFieldTests(SimpleTestCase):
    """Tests for the id list form field."""

    def test_deduplicates(self):
        """Test ids are cleaned to unique positive ints."""
        self.assertEqual(IdListField().clean([3, '3', 1]), [3, 1])

    def test_rejects_invalid(self):
        """Test non-integer, non-positive and boolean ids are rejected."""
        for value in (['a'], [0], [True], 'notalist'):
            with self.assertRaises(ValidationError):
                IdListField().clean(value)

    def test_empty_is_allowed_when_optional(self):
        """Test an optional empty list cleans to []."""
        self.assertEqual(IdListField(required=False).clean(None), [])

    def test_iso_date_accepts_timestamp(self):
        """Test a full ISO timestamp keeps only its date."""
        self.assertEqual(str(IsoDateField().clean('2026-03-01T09:30:00Z')), '2026-03-01')


class ApiErrorMiddlewareTests(SimpleTestCase):
    """Tests for exception to JSON response mapping."""

    def setUp(self):
        self.middleware = ApiErrorMiddleware(lambda request: None)
        self.request = RequestFactory().get('/api/tests/')

    def handle(self, exception):
        response = self.middleware.process_exception(self.request, exception)
        return response.status_code, json.loads(response.content)

    def test_domain_errors_use_their_status(self):
        """Test AcademicRecordsError subclasses keep their status code."""
        self.assertEqual(self.handle(NotFound('Test not found')), (404, {'message': 'Test not found'}))
        self.assertEqual(self.handle(StudentNotFound())[0], 404)
        self.assertEqual(self.handle(DivisionInvalid())[0], 400)
        self.assertEqual(self.handle(Conflict())[0], 409)

    def test_validation_errors_are_camelized(self):
        """Test field errors are returned with camelCase keys."""
        status, body = self.handle(ValidationFailed(errors={'max_marks': ['Too low']}))
        self.assertEqual(status, 400)
        self.assertEqual(body['errors'], {'maxMarks': ['Too low']})

    def test_framework_errors(self):
        """Test Django exceptions map to their HTTP statuses."""
        self.assertEqual(self.handle(Http404())[0], 404)
        self.assertEqual(self.handle(PermissionDenied())[0], 403)
        self.assertEqual(self.handle(ValidationError('bad'))[0], 400)
        self.assertEqual(self.handle(IntegrityError('dup'))[0], 409)

    def test_ratelimited_is_429(self):
        """Test rate limiting is reported as 429, not 403."""
        self.request.user = 'anonymous'
        self.assertEqual(self.handle(Ratelimited())[0], 429)

    def test_unexpected_error_is_500(self):
        """Test unknown exceptions become a generic 500."""
        with self.assertLogs('core.middleware', level='ERROR'):
            status, body = self.handle(RuntimeError('boom'))
        self.assertEqual(status, 500)
        self.assertEqual(body, {'message': 'Internal server error'})

    def test_non_api_paths_are_ignored(self):
        """Test requests outside /api/ keep Django's default handling."""
        request = RequestFactory().get('/django-admin/')
        self.assertIsNone(self.middleware.process_exception(request, NotFound()))


class HealthCheckTests(SimpleTestCase):
    """Tests for the liveness endpoint."""

    def test_health_check(self):
        """Test the health endpoint needs no authentication."""
        response = self.client.get('/health/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'status': 'healthy'})
