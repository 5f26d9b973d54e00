import logging

from django.core.exceptions import ValidationError
from django.db import IntegrityError, DatabaseError
from django.http import Http404
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.filters import SearchFilter, OrderingFilter
from rest_framework.permissions import IsAuthenticated, IsAdminUser

from accounts.models import Dealer
from accounts.utils import get_request_dealer
from core.utils import rest_api_formatter, Pagination
from discounts.cache import invalidate_discount_cache
from discounts.catalog import load_active_discounts, get_dealer_usage_counts, find_discount_by_code
from discounts.exceptions import CatalogUnavailable
from discounts.models import Discount, AppliedDiscount
from discounts.serializers import (
    DiscountSerializer,
    DiscountListSerializer,
    DiscountCalculationSerializer,
    AppliedDiscountSerializer
)
from discounts.utils import calculate_for_line_item, select_candidates
from orders.utils import line_item_for_variant
from products.models import ProductVariant

logger = logging.getLogger(__name__)


class DiscountViewSet(viewsets.ModelViewSet):
    """
    ViewSet for managing Discounts.

    Provides CRUD operations for discounts:
    - list: Get live discounts (pass ?status=deleted to see deleted ones)
    - create: Create a new discount
    - retrieve: Get a specific discount
    - update: Update a discount
    - partial_update: Partially update a discount
    - destroy: Soft delete a discount
    - restore: Bring a deleted discount back
    - active: Discounts currently in effect
    - calculate: Discounted price of one variant for the caller's dealer
    """
    queryset = Discount.objects.all()
    serializer_class = DiscountSerializer
    permission_classes = [IsAuthenticated, IsAdminUser]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    filterset_fields = ['discount_type', 'is_active', 'stackable', 'auto_apply', 'status']
    search_fields = ['name', 'discount_code']
    ordering_fields = ['start_date', 'end_date', 'discount_value', 'priority']
    ordering = ['-priority']
    lookup_value_regex = '[0-9a-fA-F-]{36}'

    def get_serializer_class(self):
        """Use lightweight serializer for list action."""
        if self.action in ('list', 'active'):
            return DiscountListSerializer
        return DiscountSerializer

    def get_queryset(self):
        if self.action == 'list' and 'status' not in self.request.query_params:
            queryset = Discount.live_objects.all()
        else:
            queryset = Discount.objects.all()
        return queryset.prefetch_related(
            'applicable_variants', 'applicable_categories', 'applicable_dealers'
        )

    def list(self, request, *args, **kwargs):
        """List discounts with optional filtering."""
        logger.info(f"Discount list requested by user: {request.user.email}")

        try:
            queryset = self.filter_queryset(self.get_queryset())
            serializer = self.get_serializer(queryset, many=True)

            logger.debug(f"Retrieved {len(serializer.data)} discounts")
            return rest_api_formatter(
                data=serializer.data,
                status_code=status.HTTP_200_OK,
                success=True,
                message='Discounts retrieved successfully'
            )

        except DatabaseError as e:
            logger.critical(f"Database error listing discounts: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                success=False,
                message='Service temporarily unavailable',
                error_code='DATABASE_ERROR',
                error_message='Please try again later'
            )

        except Exception as e:
            logger.exception(f"Unexpected error listing discounts: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                success=False,
                message='An unexpected error occurred',
                error_code='INTERNAL_ERROR',
                error_message='Please try again later'
            )

    def create(self, request, *args, **kwargs):
        """Create a new discount."""
        logger.info(f"Discount creation by user: {request.user.email}")

        try:
            serializer = self.get_serializer(data=request.data)

            if serializer.is_valid():
                discount = serializer.save()

                invalidate_discount_cache()

                logger.info(f"Discount created: {discount.name} (ID: {discount.id})")
                return rest_api_formatter(
                    data=DiscountSerializer(discount).data,
                    status_code=status.HTTP_201_CREATED,
                    success=True,
                    message='Discount created successfully'
                )

            logger.warning(f"Discount validation failed: {serializer.errors}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_400_BAD_REQUEST,
                success=False,
                message='Failed to create discount',
                error_code='VALIDATION_ERROR',
                error_message=str(serializer.errors),
                error_fields=serializer.errors
            )

        except IntegrityError as e:
            logger.error(f"Integrity error creating discount: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_409_CONFLICT,
                success=False,
                message='Discount could not be created due to a conflict',
                error_code='INTEGRITY_ERROR',
                error_message='A discount with the same code may already exist'
            )

        except DatabaseError as e:
            logger.critical(f"Database error creating discount: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                success=False,
                message='Service temporarily unavailable',
                error_code='DATABASE_ERROR',
                error_message='Please try again later'
            )

        except Exception as e:
            logger.exception(f"Unexpected error creating discount: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                success=False,
                message='An unexpected error occurred',
                error_code='INTERNAL_ERROR',
                error_message='Please try again later'
            )

    def retrieve(self, request, *args, **kwargs):
        """Retrieve a specific discount."""
        discount_id = kwargs.get('pk')
        logger.info(f"Discount retrieve requested - ID: {discount_id}")

        try:
            instance = self.get_object()
            serializer = self.get_serializer(instance)

            return rest_api_formatter(
                data=serializer.data,
                status_code=status.HTTP_200_OK,
                success=True,
                message='Discount retrieved successfully'
            )

        except Http404:
            logger.warning(f"Discount not found - ID: {discount_id}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_404_NOT_FOUND,
                success=False,
                message='Discount not found',
                error_code='NOT_FOUND',
                error_message='The requested discount does not exist'
            )

    def update(self, request, *args, **kwargs):
        """Update a discount."""
        partial = kwargs.pop('partial', False)
        discount_id = kwargs.get('pk')
        logger.info(f"Discount update requested - ID: {discount_id}, Partial: {partial}")

        try:
            instance = get_object_or_404(Discount.live_objects, pk=discount_id)
        except Http404:
            logger.warning(f"Discount not found for update - ID: {discount_id}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_404_NOT_FOUND,
                success=False,
                message='Discount not found',
                error_code='NOT_FOUND',
                error_message='The requested discount does not exist'
            )

        try:
            serializer = self.get_serializer(instance, data=request.data, partial=partial)

            if serializer.is_valid():
                discount = serializer.save()

                invalidate_discount_cache()

                logger.info(f"Discount updated: {discount.name} (ID: {discount.id})")
                return rest_api_formatter(
                    data=DiscountSerializer(discount).data,
                    status_code=status.HTTP_200_OK,
                    success=True,
                    message='Discount updated successfully'
                )

            logger.warning(f"Discount update validation failed - ID: {discount_id}: {serializer.errors}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_400_BAD_REQUEST,
                success=False,
                message='Failed to update discount',
                error_code='VALIDATION_ERROR',
                error_message=str(serializer.errors),
                error_fields=serializer.errors
            )

        except IntegrityError as e:
            logger.error(f"Integrity error updating discount {discount_id}: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_409_CONFLICT,
                success=False,
                message='Update failed due to a conflict',
                error_code='INTEGRITY_ERROR',
                error_message='Please check the data and try again'
            )

        except DatabaseError as e:
            logger.critical(f"Database error updating discount {discount_id}: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                success=False,
                message='Service temporarily unavailable',
                error_code='DATABASE_ERROR',
                error_message='Please try again later'
            )

        except Exception as e:
            logger.exception(f"Unexpected error updating discount {discount_id}: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                success=False,
                message='An unexpected error occurred',
                error_code='INTERNAL_ERROR',
                error_message='Please try again later'
            )

    def destroy(self, request, *args, **kwargs):
        """Soft delete a discount by setting its status to DELETED."""
        discount_id = kwargs.get('pk')
        logger.info(f"Discount delete requested - ID: {discount_id}")

        try:
            instance = get_object_or_404(Discount.live_objects, pk=discount_id)
            instance.soft_delete()

            invalidate_discount_cache()

            logger.info(f"Discount soft deleted: {instance.name} (ID: {discount_id})")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_200_OK,
                success=True,
                message='Discount deleted successfully'
            )

        except Http404:
            logger.warning(f"Discount not found for delete - ID: {discount_id}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_404_NOT_FOUND,
                success=False,
                message='Discount not found',
                error_code='NOT_FOUND',
                error_message='The requested discount does not exist'
            )

    @action(detail=True, methods=['post'])
    def restore(self, request, pk=None):
        """Restore a soft-deleted discount."""
        logger.info(f"Discount restore requested - ID: {pk}")

        try:
            instance = get_object_or_404(Discount.objects, pk=pk)
        except Http404:
            logger.warning(f"Discount not found for restore - ID: {pk}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_404_NOT_FOUND,
                success=False,
                message='Discount not found',
                error_code='NOT_FOUND',
                error_message='The requested discount does not exist'
            )

        if not instance.is_deleted:
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_400_BAD_REQUEST,
                success=False,
                message='Discount is not deleted',
                error_code='NOT_DELETED',
                error_message='Only deleted discounts can be restored'
            )

        instance.restore()
        invalidate_discount_cache()

        logger.info(f"Discount restored: {instance.name} (ID: {pk})")
        return rest_api_formatter(
            data=DiscountSerializer(instance).data,
            status_code=status.HTTP_200_OK,
            success=True,
            message='Discount restored successfully'
        )

    @action(detail=False, methods=['get'])
    def active(self, request):
        """Get discounts that are live, switched on and inside their date window."""
        logger.info(f"Active discounts requested by user: {request.user.email}")

        try:
            now = timezone.now()

            queryset = Discount.live_objects.filter(
                is_active=True,
                start_date__lte=now,
                end_date__gte=now
            )
            serializer = DiscountListSerializer(queryset, many=True)

            return rest_api_formatter(
                data=serializer.data,
                status_code=status.HTTP_200_OK,
                success=True,
                message='Active discounts retrieved successfully'
            )

        except DatabaseError as e:
            logger.critical(f"Database error retrieving active discounts: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                success=False,
                message='Service temporarily unavailable',
                error_code='DATABASE_ERROR',
                error_message='Please try again later'
            )

    @action(detail=False, methods=['post'], permission_classes=[IsAuthenticated])
    def calculate(self, request):
        """
        Discounted price of one variant for a quantity.

        Dealer users always price for their own dealer; administrators may
        pass dealer_id. unit_price defaults to the dealer's price list.
        """
        logger.info(f"Discount calculation requested by user: {request.user.email}")

        serializer = DiscountCalculationSerializer(data=request.data)
        if not serializer.is_valid():
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_400_BAD_REQUEST,
                success=False,
                message='Validation failed',
                error_code='VALIDATION_ERROR',
                error_message=str(serializer.errors),
                error_fields=serializer.errors
            )
        data = serializer.validated_data

        try:
            dealer = get_request_dealer(request.user, data.get('dealer_id'))
            variant = ProductVariant.objects.select_related('product__category').get(
                id=data['variant_id'], product__is_active=True
            )
        except (Dealer.DoesNotExist, ProductVariant.DoesNotExist):
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_404_NOT_FOUND,
                success=False,
                message='Dealer or variant not found',
                error_code='NOT_FOUND',
                error_message='The requested dealer or product variant does not exist'
            )

        try:
            explicit_discount_id = None
            if data.get('discount_code'):
                discount = find_discount_by_code(data['discount_code'])
                if discount is None:
                    return rest_api_formatter(
                        data=None,
                        status_code=status.HTTP_400_BAD_REQUEST,
                        success=False,
                        message='Invalid discount code',
                        error_code='VALIDATION_ERROR',
                        error_message='The discount code does not exist',
                        error_fields={'discount_code': ['Invalid discount code.']}
                    )
                explicit_discount_id = discount.id

            now = timezone.now()
            warnings = []
            try:
                catalog = load_active_discounts(now)
            except CatalogUnavailable:
                catalog = []
                warnings.append('Discounts are temporarily unavailable.')

            candidates, include_ids = select_candidates(catalog, explicit_discount_id)
            line_item = line_item_for_variant(
                variant, data['quantity'], dealer=dealer, unit_price=data.get('unit_price'), now=now
            )
            pricing = calculate_for_line_item(
                candidates,
                dealer_id=dealer.id if dealer else None,
                line_item=line_item,
                now=now,
                include_ids=include_ids,
                dealer_usage=get_dealer_usage_counts(dealer.id) if dealer else None,
            )

            result = pricing.to_dict()
            result['warnings'] = warnings
            return rest_api_formatter(
                data=result,
                status_code=status.HTTP_200_OK,
                success=True,
                message='Discount calculated successfully'
            )

        except ValidationError as e:
            logger.warning(f"Discount calculation rejected for user: {request.user.email}: {e.message_dict}")
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
            logger.critical(f"Database error calculating discount: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                success=False,
                message='Service temporarily unavailable',
                error_code='DATABASE_ERROR',
                error_message='Please try again later'
            )

        except Exception as e:
            logger.exception(f"Unexpected error calculating discount: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                success=False,
                message='An unexpected error occurred',
                error_code='INTERNAL_ERROR',
                error_message='Please try again later'
            )


class AppliedDiscountViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for viewing Applied Discounts (read-only).
    Applied discounts are created when orders are placed.
    Uses Pagination class from core.utils (20 items per page).
    """
    queryset = AppliedDiscount.objects.all()
    serializer_class = AppliedDiscountSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = Pagination

    def get_queryset(self):
        """Administrators see every redemption, dealer users their dealer's."""
        user = self.request.user
        queryset = AppliedDiscount.objects.select_related(
            'order', 'discount', 'dealer'
        ).filter(is_active=True).order_by('-created_at')
        if user.is_staff:
            return queryset
        if not user.dealer_id:
            return queryset.none()
        return queryset.filter(dealer_id=user.dealer_id)

    def list(self, request, *args, **kwargs):
        """List applied discounts with pagination."""
        logger.info(f"Applied discounts list requested by user: {request.user.email}")

        try:
            queryset = self.filter_queryset(self.get_queryset())

            page = self.paginate_queryset(queryset)
            if page is not None:
                serializer = self.get_serializer(page, many=True)
                return self.get_paginated_response(serializer.data)

            serializer = self.get_serializer(queryset, many=True)
            return rest_api_formatter(
                data=serializer.data,
                status_code=status.HTTP_200_OK,
                success=True,
                message='Applied discounts retrieved successfully'
            )

        except DatabaseError as e:
            logger.critical(f"Database error listing applied discounts: {str(e)}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                success=False,
                message='Service temporarily unavailable',
                error_code='DATABASE_ERROR',
                error_message='Please try again later'
            )

    def retrieve(self, request, *args, **kwargs):
        """Retrieve a specific applied discount."""
        applied_id = kwargs.get('pk')
        logger.info(f"Applied discount retrieve requested - ID: {applied_id}")

        try:
            instance = get_object_or_404(self.get_queryset(), pk=applied_id)
            serializer = self.get_serializer(instance)

            return rest_api_formatter(
                data=serializer.data,
                status_code=status.HTTP_200_OK,
                success=True,
                message='Applied discount retrieved successfully'
            )

        except Http404:
            logger.warning(f"Applied discount not found - ID: {applied_id}")
            return rest_api_formatter(
                data=None,
                status_code=status.HTTP_404_NOT_FOUND,
                success=False,
                message='Applied discount not found',
                error_code='NOT_FOUND',
                error_message='The requested applied discount does not exist'
            )
