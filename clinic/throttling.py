from rest_framework.throttling import UserRateThrottle


class QueueJoinThrottle(UserRateThrottle):
    scope = 'queue_join'


class BookingThrottle(UserRateThrottle):
    scope = 'booking'
