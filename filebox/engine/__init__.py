"""FileBox Engine — configuration, errors, logging, actor context, runtime."""
