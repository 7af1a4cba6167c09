from django.urls import path, include

# Member-to-member routes; accounts are mounted separately in urls.py
urlpatterns = [
    path('', include('entanglements.urls')),
]
