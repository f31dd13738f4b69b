from django.conf import settings
from django.shortcuts import redirect

def index(request):
    # Staff land on the review dashboard, everyone else on the public SPA
    if request.user.is_authenticated and request.user.is_staff:
        return redirect(settings.STAFF_HOME_URL)
    return redirect(settings.FRONTEND_URL)
