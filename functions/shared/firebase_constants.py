# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Firestore collection holding one document per special event.
EVENTS_COLLECTION = "events"

# Realtime Database path holding sermon children under push keys.
SERMONS_PATH = "sermons"

# Cloud Storage prefixes for uploaded blobs.
SERMON_AUDIO_PREFIX = "sermons"
EVENT_IMAGE_PREFIX = "events"

# Metadata key Firebase Storage uses to serve tokenized download URLs.
DOWNLOAD_TOKENS_METADATA_KEY = "firebaseStorageDownloadTokens"
