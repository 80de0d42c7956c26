"""
Artwork module: member submissions reviewed by admins.

- New submissions always start as pending
- Admins move artworks between pending, approved and rejected and may score them
- Status changes are recorded to the audit trail, which doubles as the review history
"""
