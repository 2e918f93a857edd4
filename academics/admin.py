from django.contrib import admin

from .models import Subject


@admin.register(Subject)
class SubjectAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'department', 'credits', 'is_active')
    list_filter = ('department', 'is_active')
    search_fields = ('code', 'name')
    filter_horizontal = ('teachers',)
    readonly_fields = ('created_by', 'created_at', 'updated_at')
