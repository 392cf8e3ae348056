from .admin import register_admin_routes
from .coupons import register_coupon_routes
from .payments import register_payment_routes
from .products import register_product_routes
from .reports import register_report_routes
from .reviews import register_review_routes
from .users import register_user_routes


def register_routes(app):
    register_user_routes(app)
    register_admin_routes(app)
    register_product_routes(app)
    register_report_routes(app)
    register_review_routes(app)
    register_coupon_routes(app)
    register_payment_routes(app)
