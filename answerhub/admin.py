from django.contrib import admin
from django.contrib.admin import AdminSite
from .models import Profile, Question, Solution, Comment, Like


class AnswerHubAdminSite(AdminSite):
    site_header = "AlgoAnswerHub Admin Dashboard"
    site_title = "AlgoAnswerHub Admin"
    index_title = "Questions & Community"


admin_site = AnswerHubAdminSite(name="hubadmin")


class QuestionAdmin(admin.ModelAdmin):
    list_display = ("title", "difficulty", "created_at")
    list_filter = ("difficulty",)
    search_fields = ("title", "description")


class SolutionAdmin(admin.ModelAdmin):
    list_display = ("title", "question", "author", "likes", "created_at")
    search_fields = ("title", "content")


class ProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "is_admin", "created_at")
    list_filter = ("is_admin",)


admin_site.register(Profile, ProfileAdmin)
admin_site.register(Question, QuestionAdmin)
admin_site.register(Solution, SolutionAdmin)
admin_site.register(Comment)
admin_site.register(Like)
