from django.urls import path
from . import views

urlpatterns = [
    path('reports/daily-sales/', views.daily_sales_report, name='daily-sales-report'),
    path('reports/dashboard/', views.dashboard_kpis, name='dashboard-kpis'),
    path('reports/suppliers/', views.supplier_summary_report, name='supplier-summary-report'),
    path('reports/expenses/', views.expense_summary_report, name='expense-summary-report'),
]
