from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Driver offer responses
    path('accept-ride/', views.accept_ride, name='accept-ride'),
    path('decline-ride/', views.decline_ride, name='decline-ride'),

    # Quotes
    path('quote/', views.quote, name='quote'),

    # Passenger / dispatch
    path('request/', views.create_ride_request, name='create-ride'),
    path('assign-driver/', views.assign_driver, name='assign-driver'),

    # Ride progress
    path('<str:ride_id>/start/', views.start_ride, name='start-ride'),
    path('<str:ride_id>/complete/', views.complete_ride, name='complete-ride'),
    path('<str:ride_id>/cancel/', views.cancel_ride, name='cancel-ride'),
]
