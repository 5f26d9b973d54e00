import logging

from django.core.exceptions import ValidationError
from django.db import IntegrityError, DatabaseError
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.views import APIView

from accounts.models import Dealer
from accounts.utils import get_request_dealer
from core.utils import rest_api_formatter, Pagination
from orders.models import Order
from orders.serializers import OrderPricingInputSerializer, OrderCheckoutSerializer, OrderDetailSerializer
from orders.utils import price_cart, place_order

logger = logging.getLogger(__name__)


def _dealer_error(user_id, dealer_id):
    if dealer_id:
        logger.warning(f"Dealer {dealer_id} not found for user ID: {user_id}")
        return rest_api_formatter(
            data=None,
            status_code=status.HTTP_404_NOT_FOUND,
            success=False,
            message='Dealer not found',
            error_code='NOT_FOUND',
            error_message='The requested dealer does not exist'
        )
    logger.warning(f"No dealer for user ID: {user_id}")
    return rest_api_formatter(
        data=None,
        status_code=status.HTTP_400_BAD_REQUEST,
        success=False,
        message='A dealer is required',
        error_code='DEALER_REQUIRED',
        error_message='Your account is not linked to a dealer'
    )


class OrderPreviewView(APIView):
    """
    API view for pricing a cart without placing it.

    POST /api/orders/preview/
    Accepts: { items: [{product_variant_id, quantity}], discount_code, dealer_id }
    Returns: subtotal, discount, total, per-line breakdown and warnings
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        """Generate order preview with discount breakdown."""
        user_id = request.user.id
        logger.info(f"Order preview requested by user ID: {user_id}")

        serializer = OrderPricingInputSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(f"Preview validation failed for user ID: {user_id}: {serializer.errors}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_400_BAD_REQUEST,
                success=False,
                message='Validation failed',
                error_code='VALIDATION_ERROR',
                error_message='Invalid input data',
                error_fields=serializer.errors
            )

        data = serializer.validated_data
        try:
            dealer = get_request_dealer(request.user, data.get('dealer_id'))
        except Dealer.DoesNotExist:
            dealer = None
        if dealer is None:
            return _dealer_error(user_id, data.get('dealer_id'))

        try:
            pricing = price_cart(dealer, data['items'], discount_code=data.get('discount_code'))

            logger.debug(f"Preview for dealer {dealer.code}: total {pricing.total_amount}")
            return rest_api_formatter(
                data=pricing.to_dict(),
                status_code=status.HTTP_200_OK,
                success=True,
                message='Order preview generated'
            )

        except ValidationError as e:
            logger.warning(f"Preview rejected for user ID: {user_id}: {e.message_dict}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_400_BAD_REQUEST,
                success=False,
                message='Validation failed',
                error_code='VALIDATION_ERROR',
                error_message='Invalid input data',
                error_fields=e.message_dict
            )

        except DatabaseError as e:
            logger.critical(f"Database error generating preview for user ID: {user_id}: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                success=False,
                message='Service temporarily unavailable',
                error_code='DATABASE_ERROR',
                error_message='Please try again later'
            )

        except Exception as e:
            logger.exception(f"Error generating order preview for user ID: {user_id}: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                success=False,
                message='Failed to generate preview',
                error_code='INTERNAL_ERROR'
            )


class OrderCheckoutView(APIView):
    """
    API view for creating an order (Checkout).

    POST /api/orders/checkout/
    Accepts: { items: [{product_variant_id, quantity}], discount_code, dealer_id, currency, notes }
    Returns: Complete order details with items and applied discounts
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        """Create a new order with items."""
        user_id = request.user.id
        logger.info(f"Checkout initiated by user ID: {user_id}")

        serializer = OrderCheckoutSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(f"Checkout validation failed for user ID: {user_id}: {serializer.errors}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_400_BAD_REQUEST,
                success=False,
                message='Validation failed',
                error_code='VALIDATION_ERROR',
                error_message='Invalid input data',
                error_fields=serializer.errors
            )

        data = serializer.validated_data
        try:
            dealer = get_request_dealer(request.user, data.get('dealer_id'))
        except Dealer.DoesNotExist:
            dealer = None
        if dealer is None:
            return _dealer_error(user_id, data.get('dealer_id'))

        try:
            order, pricing = place_order(
                request.user,
                dealer,
                data['items'],
                discount_code=data.get('discount_code'),
                currency=data['currency'],
                notes=data['notes'],
            )

            detail = OrderDetailSerializer(order).data
            detail['breakdown'] = pricing.breakdown()

            logger.info(f"Order created successfully: {order.order_number} for user ID: {user_id}")
            return rest_api_formatter(
                data=detail,
                status_code=status.HTTP_201_CREATED,
                success=True,
                message='Order created successfully'
            )

        except ValidationError as e:
            logger.warning(f"Checkout rejected for user ID: {user_id}: {e.message_dict}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_400_BAD_REQUEST,
                success=False,
                message='Validation failed',
                error_code='VALIDATION_ERROR',
                error_message='Invalid input data',
                error_fields=e.message_dict
            )

        except IntegrityError as e:
            logger.error(f"Checkout integrity error for user ID: {user_id}: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_409_CONFLICT,
                success=False,
                message='Order could not be created due to a conflict',
                error_code='INTEGRITY_ERROR',
                error_message='Please try again'
            )

        except DatabaseError as e:
            logger.critical(f"Database error during checkout for user ID: {user_id}: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                success=False,
                message='Service temporarily unavailable',
                error_code='DATABASE_ERROR',
                error_message='Please try again later'
            )

        except Exception as e:
            logger.exception(f"Unexpected error during checkout for user ID: {user_id}: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                success=False,
                message='An unexpected error occurred',
                error_code='INTERNAL_ERROR',
                error_message='Please try again later'
            )


def _orders_for(user):
    queryset = Order.objects.filter(is_active=True)
    if user.is_staff:
        return queryset
    return queryset.filter(dealer_id=user.dealer_id) if user.dealer_id else queryset.none()


class OrderDetailView(APIView):
    """
    API view for retrieving order details.

    GET /api/orders/{id}/
    Dealer users see their dealer's orders, administrators see all.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, order_id):
        user_id = request.user.id
        logger.info(f"Order detail requested - Order ID: {order_id}, User ID: {user_id}")

        try:
            order = _orders_for(request.user).select_related(
                'dealer', 'user'
            ).prefetch_related(
                'order_items__product_variant__product', 'applied_discounts__discount'
            ).get(id=order_id)

            return rest_api_formatter(
                data=OrderDetailSerializer(order).data,
                status_code=status.HTTP_200_OK,
                success=True,
                message='Order retrieved successfully'
            )

        except Order.DoesNotExist:
            logger.warning(f"Order not found - Order ID: {order_id}, User ID: {user_id}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_404_NOT_FOUND,
                success=False,
                message='Order not found',
                error_code='NOT_FOUND',
                error_message='Order does not exist or you do not have permission to view it'
            )

        except DatabaseError as e:
            logger.critical(f"Database error retrieving order {order_id}: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                success=False,
                message='Service temporarily unavailable',
                error_code='DATABASE_ERROR',
                error_message='Please try again later'
            )


class OrderListView(APIView):
    """
    API view for listing orders.

    GET /api/orders/
    Dealer users get their dealer's orders; administrators get all orders,
    optionally narrowed with ?dealer_id= and ?status=.
    """
    permission_classes = [IsAuthenticated]

    def get_queryset(self, request):
        queryset = _orders_for(request.user)

        if request.user.is_staff:
            dealer_filter = request.query_params.get('dealer_id')
            if dealer_filter:
                queryset = queryset.filter(dealer_id=dealer_filter)

        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(order_status=status_filter)

        return queryset.select_related('dealer', 'user').prefetch_related(
            'order_items__product_variant__product', 'applied_discounts__discount'
        ).order_by('-created_at')

    def get(self, request):
        user_id = request.user.id
        logger.info(f"Order list requested by user ID: {user_id}")

        try:
            paginator = Pagination()
            page = paginator.paginate_queryset(self.get_queryset(request), request, view=self)
            data = OrderDetailSerializer(page, many=True).data
            return paginator.get_paginated_response(data)

        except DatabaseError as e:
            logger.critical(f"Database error listing orders for user ID: {user_id}: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                success=False,
                message='Service temporarily unavailable',
                error_code='DATABASE_ERROR',
                error_message='Please try again later'
            )
