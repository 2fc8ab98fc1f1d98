# Services package.
#
# Each module exposes async functions holding the business logic and
# database access for one aggregate:
#
#   auth_service     — signup, login, acting-user lookup
#   user_service     — profiles, account update, account deletion fan-out
#   post_service     — CRUD + pagination + cache for Post, post deletion fan-out
#   comment_service  — comments and single-level replies
#   like_service     — like / unlike / status
#   follow_service   — follow / unfollow / follower lists
#
# Every function takes an AsyncSession first and only flushes; the
# ``get_db`` dependency commits or rolls back the whole request.  Functions
# acting on behalf of a user take that user's email explicitly.
