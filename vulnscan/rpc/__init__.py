"""Wire messages, conversions, the remote scan client and the server-side handlers."""