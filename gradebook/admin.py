from django.contrib import admin

from .models import Test, TestResult


class TestResultInline(admin.TabularInline):
    model = TestResult
    extra = 0
    fields = ('student', 'marks_obtained', 'percentage', 'grade', 'is_passed', 'remarks')
    readonly_fields = ('percentage', 'grade', 'is_passed')
    raw_id_fields = ('student',)


@admin.register(Test)
class TestAdmin(admin.ModelAdmin):
    list_display = ('title', 'subject', 'test_type', 'test_date', 'max_marks', 'is_published', 'is_active')
    list_filter = ('test_type', 'is_published', 'is_active', 'subject__department')
    search_fields = ('title', 'subject__code', 'subject__name')
    date_hierarchy = 'test_date'
    inlines = [TestResultInline]


@admin.register(TestResult)
class TestResultAdmin(admin.ModelAdmin):
    list_display = ('student', 'test', 'marks_obtained', 'percentage', 'grade', 'is_passed')
    list_filter = ('grade', 'is_passed', 'test__subject')
    search_fields = ('student__email', 'student__name', 'student__roll_number', 'test__title')
    readonly_fields = ('percentage', 'grade', 'is_passed', 'submitted_at', 'updated_at')
    raw_id_fields = ('student', 'test', 'graded_by')
