REDIS_LOCATION_KEY = "map:location:{user_id}"  # JSON location record
REDIS_CITY_USERS_KEY = "map:city_users:{city}"  # set of user ids
REDIS_AVAILABILITY_KEY = "map:availability:{user_id}"
REDIS_INVITE_KEY = "map:invite:{invite_id}"
REDIS_COFFEE_SHOPS_KEY = "map:coffee_shops:{city}"
REDIS_PROFILE_KEY = "map:user_profile:{user_id}"

REDIS_CITY_CHANNEL = "map:channel:city:{city}"  # pub/sub channel name
REDIS_USER_CHANNEL = "map:channel:user:{user_id}"  # pub/sub channel name

REDIS_USER_KEY = "user:{user_id}"  # hash
REDIS_USER_EMAIL_KEY = "user:email:{email}"  # email -> user id
REDIS_USER_USERNAME_KEY = "user:username:{username}"  # username -> user id
REDIS_PREFERENCES_LOG_KEY = "user:preferences:log"  # list of JSON snapshots

REDIS_VERIFICATION_KEY = "verify:{user_id}:{purpose}"  # hash, TTL = code expiry

REDIS_MEETUP_KEY = "meetup:{meetup_id}"
REDIS_OPEN_MEETUPS_KEY = "meetups:open"  # zset meetup id -> created ts
REDIS_HOST_MEETUPS_KEY = "meetups:host:{host_id}"  # zset
REDIS_REQUEST_KEY = "request:{request_id}"
REDIS_MEETUP_REQUESTS_KEY = "meetup:requests:{meetup_id}"  # set of request ids

# **Example `user:{id}` hash fields**
# - `id`, `username`, `email`, `firstName`, `lastName`
# - `password` = bcrypt hash
# - `isEmailVerified` / `isPhoneVerified` = json bool
# - `onboardingCompleted` = json bool
# - one field per onboarding preference (`coffeePersonality`, ...)
