from django.urls import path
from .views import review_list_create, review_detail, contact_submit

urlpatterns = [
    # Community review endpoints
    path('community/', review_list_create, name='review-list-create'),
    path('community/<int:pk>/', review_detail, name='review-detail'),

    # Contact form
    path('contact/submit/', contact_submit, name='contact-submit'),
]
