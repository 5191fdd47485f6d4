from django.shortcuts import render, redirect

from core.policies import can


# Home page view (public or redirect to dashboard if logged in)
def home(request):
    if request.user.is_authenticated:
        # Redirect based on role
        if can(request.user, 'create_loans'):
            return redirect('circulation:librarian_dashboard')
        return redirect('circulation:my_loans')
    return render(request, 'home.html')
