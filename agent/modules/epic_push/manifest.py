"""Epic push module manifest: tool definitions."""

from shared.schemas.tools import ModuleManifest, ToolDefinition, ToolParameter

_SUBSCRIBER_PARAMS = [
    ToolParameter(
        name="subscriber_type",
        type="string",
        description="'group' for a group chat, 'private' for a direct chat with one user.",
        enum=["group", "private"],
    ),
    ToolParameter(
        name="subject_id",
        type="string",
        description="Group id for 'group', user id for 'private'.",
    ),
]

MANIFEST = ModuleManifest(
    module_name="epic_push",
    description=(
        "Epic Games Store free-games news. Subscribes group chats or users to a "
        "daily push at a chosen time (UTC+8), and answers on-demand queries."
    ),
    tools=[
        ToolDefinition(
            name="epic_push.subscribe",
            description=(
                "Enable the daily Epic free-games push. Calling it again with a "
                "new time replaces the previous time. A push is only sent when "
                "the free-games list changed since the last one."
            ),
            parameters=[
                *_SUBSCRIBER_PARAMS,
                ToolParameter(
                    name="time",
                    type="string",
                    description="Daily push time as HH:MM in UTC+8, e.g. '8:30'.",
                ),
            ],
            required_permission="admin",
        ),
        ToolDefinition(
            name="epic_push.unsubscribe",
            description="Disable the daily Epic free-games push.",
            parameters=list(_SUBSCRIBER_PARAMS),
            required_permission="admin",
        ),
        ToolDefinition(
            name="epic_push.subscription_status",
            description="Show whether the daily push is enabled and at what time.",
            parameters=list(_SUBSCRIBER_PARAMS),
        ),
        ToolDefinition(
            name="epic_push.free_games",
            description="Send the games that are free on the Epic Games Store right now.",
            parameters=list(_SUBSCRIBER_PARAMS),
        ),
        ToolDefinition(
            name="epic_push.list_subscriptions",
            description="List every subscriber and its persisted push time.",
            parameters=[],
            required_permission="admin",
        ),
    ],
)
