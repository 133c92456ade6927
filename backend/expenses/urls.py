from django.urls import path
from .views import expense_list_create, expense_detail, expense_categories

urlpatterns = [
    path('expenses/', expense_list_create, name='expense-list-create'),
    path('expenses/categories/', expense_categories, name='expense-categories'),
    path('expenses/<int:pk>/', expense_detail, name='expense-detail'),
]
