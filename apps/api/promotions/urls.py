"""
Promotions API URLs for Aggrekart
Endpoints for benefit redemption, Aggre Coin accounts and benefit administration.
"""

from django.urls import path

from . import views

app_name = 'promotions'

urlpatterns = [
    # Evaluation & redemption (customer authenticated)
    path('evaluate/', views.evaluate_benefit, name='evaluate'),
    path('apply/', views.apply_benefit, name='apply'),
    path('available/', views.available_benefits, name='available'),

    # Aggre Coin account (customer authenticated)
    path('account/', views.account_summary, name='account_summary'),
    path('account/redeem-coins/', views.redeem_coins, name='redeem_coins'),
    path('account/referral/', views.apply_referral_code, name='apply_referral'),

    # Staff operations
    path('award/coins/', views.award_coins, name='award_coins'),
    path('award/coupon/', views.award_coupon, name='award_coupon'),
    path('benefits/<str:benefit>/', views.benefit_detail, name='benefit_detail'),
    path('benefits/<str:benefit>/<str:action>/', views.benefit_action, name='benefit_action'),
]
