"""Admin registrations for rosters, attendance and notices."""

from django.contrib import admin

from .models import Announcement, AttendanceRecord, Notification, SchoolClass, Student


@admin.register(SchoolClass)
class SchoolClassAdmin(admin.ModelAdmin):
    list_display = ("name", "teacher")
    search_fields = ("name", "teacher__username")


@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    """Descriptors are encrypted blobs; only show whether one is enrolled."""

    list_display = ("name", "roll_number", "school_class", "parent", "enrolled")
    list_filter = ("school_class",)
    search_fields = ("name", "roll_number")
    readonly_fields = ("descriptor_updated_at",)

    @admin.display(boolean=True, description="Face enrolled")
    def enrolled(self, obj: Student) -> bool:
        return bool(obj.face_descriptor)


@admin.register(AttendanceRecord)
class AttendanceRecordAdmin(admin.ModelAdmin):
    list_display = ("date", "student", "school_class", "status", "timestamp")
    list_filter = ("status", "school_class", "date")
    search_fields = ("student__name",)
    date_hierarchy = "date"


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("timestamp", "user", "kind", "is_read")
    list_filter = ("kind", "is_read")


@admin.register(Announcement)
class AnnouncementAdmin(admin.ModelAdmin):
    list_display = ("timestamp", "audience", "sent_by")
    list_filter = ("audience",)
