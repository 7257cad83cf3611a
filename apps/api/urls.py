# ===============================================================================
# AGGREKART API MAIN URLS 🚀
# ===============================================================================
#
# Central API routing for the promotion engine.
#
# URL Structure:
#   /api/promotions/  → Benefit redemption, Aggre Coins and benefit administration
#

from django.urls import include, path

from .promotions import urls as promotion_urls

app_name = 'api'

# ===============================================================================
# API ROUTING 📍
# ===============================================================================

urlpatterns = [
    path('promotions/', include((promotion_urls, 'promotions'))),
]
