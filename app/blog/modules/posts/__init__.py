"""
Posts module.

- Public readers see published posts only (list, detail, search)
- Writers and admins manage drafts and publish from /api/admin/posts
- Publishing a post can fan out a "new post" email to active subscribers
"""
