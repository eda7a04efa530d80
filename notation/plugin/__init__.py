"""Plugin contract messages, algorithm names, the CLI plugin client and the plugin manager."""