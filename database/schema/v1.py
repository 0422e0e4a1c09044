"""Schema v1 - Initial database schema.

This version includes tables for:
- Users, roles and trade statistics
- Authentication sessions
- Listings of game items
- Transactions between buyers and sellers, optionally escrow mediated
- Per-transaction chats and messages
- Reviews left after completed transactions
"""

def _audit_columns():
    return [
        {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
        {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
    ]

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'email', 'type': 'TEXT', 'nullable': False},
                {'name': 'hashed_password', 'type': 'TEXT', 'nullable': False},
                {'name': 'username', 'type': 'TEXT'},
                {'name': 'bio', 'type': 'TEXT'},
                {'name': 'image', 'type': 'TEXT'},
                {'name': 'wallet_address', 'type': 'TEXT'},
                {'name': 'role', 'type': 'TEXT', 'nullable': False, 'default': "'BUYER'"},
                {'name': 'rating', 'type': 'DECIMAL', 'nullable': False, 'default': '0'},
                {'name': 'verified_seller', 'type': 'BOOL', 'nullable': False, 'default': 'false'},
                {'name': 'transaction_count', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'successful_transactions', 'type': 'INT8', 'nullable': False, 'default': '0'},
                *_audit_columns()
            ],
            'indexes': [
                {'name': 'idx_users_email', 'columns': ['email'], 'unique': True},
                {'name': 'idx_users_role', 'columns': ['role']}
            ]
        },
        {
            'name': 'auth_sessions',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'token', 'type': 'TEXT', 'nullable': False},
                {'name': 'expires_at', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'revoked', 'type': 'BOOL', 'nullable': False, 'default': 'false'},
                {'name': 'revoked_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'last_used_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'user_agent', 'type': 'TEXT'},
                {'name': 'ip_address', 'type': 'TEXT'},
                *_audit_columns()
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_sessions_user', 'columns': ['user_id']},
                {'name': 'idx_sessions_token', 'columns': ['token'], 'unique': True}
            ]
        },
        {
            'name': 'listings',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT', 'nullable': False},
                {'name': 'price', 'type': 'DECIMAL', 'nullable': False},
                {'name': 'currency', 'type': 'TEXT', 'nullable': False, 'default': "'ETH'"},
                {'name': 'images', 'type': 'TEXT[]', 'nullable': False},
                {'name': 'category', 'type': 'TEXT', 'nullable': False},
                {'name': 'rarity', 'type': 'TEXT', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'AVAILABLE'"},
                *_audit_columns()
            ],
            'foreign_keys': [
                {'columns': ['seller_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_listings_seller', 'columns': ['seller_id']},
                {'name': 'idx_listings_status', 'columns': ['status']},
                {'name': 'idx_listings_category', 'columns': ['category']}
            ]
        },
        {
            'name': 'transactions',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'amount', 'type': 'DECIMAL', 'nullable': False},
                {'name': 'currency', 'type': 'TEXT', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'PENDING'"},
                {'name': 'buyer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'escrow_id', 'type': 'UUID'},
                {'name': 'listing_id', 'type': 'UUID', 'nullable': False},
                {'name': 'tx_hash', 'type': 'TEXT'},
                {'name': 'escrow_address', 'type': 'TEXT'},
                {'name': 'completed_at', 'type': 'TIMESTAMPTZ'},
                *_audit_columns()
            ],
            'foreign_keys': [
                {'columns': ['buyer_id'], 'references': 'users(id)'},
                {'columns': ['seller_id'], 'references': 'users(id)'},
                {'columns': ['escrow_id'], 'references': 'users(id)'},
                {'columns': ['listing_id'], 'references': 'listings(id)'}
            ],
            'indexes': [
                {'name': 'idx_transactions_buyer', 'columns': ['buyer_id']},
                {'name': 'idx_transactions_seller', 'columns': ['seller_id']},
                {'name': 'idx_transactions_escrow', 'columns': ['escrow_id']},
                {'name': 'idx_transactions_listing', 'columns': ['listing_id']},
                {'name': 'idx_transactions_status', 'columns': ['status']}
            ]
        },
        {
            'name': 'chats',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'transaction_id', 'type': 'UUID', 'nullable': False},
                *_audit_columns()
            ],
            'foreign_keys': [
                {'columns': ['transaction_id'], 'references': 'transactions(id)'}
            ],
            'indexes': [
                {'name': 'idx_chats_transaction', 'columns': ['transaction_id'], 'unique': True}
            ]
        },
        {
            'name': 'messages',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'chat_id', 'type': 'UUID', 'nullable': False},
                {'name': 'sender_id', 'type': 'UUID', 'nullable': False},
                {'name': 'recipient_id', 'type': 'UUID', 'nullable': False},
                {'name': 'content', 'type': 'TEXT', 'nullable': False},
                {'name': 'is_read', 'type': 'BOOL', 'nullable': False, 'default': 'false'},
                *_audit_columns()
            ],
            'foreign_keys': [
                {'columns': ['chat_id'], 'references': 'chats(id)'}
            ],
            'indexes': [
                {'name': 'idx_messages_chat', 'columns': ['chat_id', 'created_at']},
                {'name': 'idx_messages_unread', 'columns': ['recipient_id'], 'where': 'NOT is_read'}
            ]
        },
        {
            'name': 'reviews',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'rating', 'type': 'INT8', 'nullable': False},
                {'name': 'comment', 'type': 'TEXT'},
                {'name': 'reviewer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'target_user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'transaction_id', 'type': 'UUID', 'nullable': False},
                *_audit_columns()
            ],
            'foreign_keys': [
                {'columns': ['transaction_id'], 'references': 'transactions(id)'}
            ],
            'indexes': [
                {'name': 'idx_reviews_target', 'columns': ['target_user_id']},
                {'name': 'idx_reviews_reviewer_tx', 'columns': ['reviewer_id', 'transaction_id'], 'unique': True}
            ]
        }
    ]
}
