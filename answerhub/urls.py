from django.urls import path
from . import views

urlpatterns = [
    path('signup/', views.signup, name='signup'),
    path('login/', views.user_login, name='login'),
    path('logout/', views.user_logout, name='logout'),
    path('confirm/<str:uidb64>/<str:token>/', views.confirm_email, name='confirm_email'),
    path('', views.home, name='home'),
    path('questions/', views.add_question, name='add_question'),
    path('questions/<int:question_id>/', views.question_detail, name='question_detail'),
    path('questions/<int:question_id>/solutions/', views.add_solution, name='add_solution'),
    path('questions/<int:question_id>/solutions/<int:solution_id>/comments/', views.add_comment, name='add_comment'),
    path('questions/<int:question_id>/solutions/<int:solution_id>/like/', views.toggle_like, name='toggle_like'),
]
